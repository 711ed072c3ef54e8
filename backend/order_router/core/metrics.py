"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

ROUTE_COUNT = Counter(
    "orq_routes_total",
    "Routed queries by executed strategy and outcome",
    labelnames=("strategy", "outcome"),
    registry=REGISTRY,
)

ROUTE_LATENCY = Histogram(
    "orq_route_latency_seconds",
    "Latency of routed queries",
    labelnames=("strategy",),
    registry=REGISTRY,
)

FALLBACKS = Counter(
    "orq_route_fallbacks_total",
    "Fallbacks recorded while routing",
    labelnames=("fallback",),
    registry=REGISTRY,
)

CACHE_EVENTS = Counter(
    "orq_cache_events_total",
    "Result cache events",
    labelnames=("event",),
    registry=REGISTRY,
)

SYNC_VECTORS = Counter(
    "orq_sync_vectors_total",
    "Vectors processed by the synchronizer",
    labelnames=("operation",),
    registry=REGISTRY,
)

SYNC_ERRORS = Counter(
    "orq_sync_batch_errors_total",
    "Synchronizer batches that failed",
    labelnames=("stage",),
    registry=REGISTRY,
)

SYNC_DURATION = Histogram(
    "orq_sync_duration_seconds",
    "Synchronization run duration",
    labelnames=("mode",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "orq_index_vectors",
    "Number of order vectors stored in the local index",
    registry=REGISTRY,
)


def metrics_payload() -> tuple[bytes, str]:
    """Return Prometheus exposition bytes and their content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "REGISTRY",
    "ROUTE_COUNT",
    "ROUTE_LATENCY",
    "FALLBACKS",
    "CACHE_EVENTS",
    "SYNC_VECTORS",
    "SYNC_ERRORS",
    "SYNC_DURATION",
    "INDEX_SIZE",
    "metrics_payload",
]
