"""Internal dataclasses shared by routing, caching and synchronization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from order_router.core.errors import PartialSyncFailure
from order_router.models.orders import Order


class IntentType(str, Enum):
    EXACT_DATA = "exact_data"
    SEMANTIC_SEARCH = "semantic_search"
    CALCULATION = "calculation"


class Strategy(str, Enum):
    DIRECT = "direct"
    VECTOR = "vector"
    HYBRID = "hybrid"


class Freshness(str, Enum):
    DEFAULT = "default"
    FRESH = "fresh"


@dataclass(slots=True, frozen=True)
class DateRange:
    """Inclusive window of time, both bounds timezone-aware."""

    start: datetime
    end: datetime
    label: str = ""

    def contains(self, value: date | datetime | None) -> bool:
        if value is None:
            return False
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=self.start.tzinfo)
            return self.start <= value <= self.end
        return self.start.date() <= value <= self.end.date()

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "label": self.label}


@dataclass(slots=True)
class IntentEntities:
    tags: list[str] = field(default_factory=list)
    exclude_tags: list[str] = field(default_factory=list)
    date_ranges: list[DateRange] = field(default_factory=list)
    job_numbers: list[str] = field(default_factory=list)
    customer_names: list[str] = field(default_factory=list)
    overdue: bool = False
    limit: int | None = None
    keywords: list[str] = field(default_factory=list)


@dataclass(slots=True)
class QueryIntent:
    type: IntentType
    entities: IntentEntities = field(default_factory=IntentEntities)
    confidence: float = 0.5
    missing_entities: list[str] = field(default_factory=list)
    explanation: str = ""

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.missing_entities)


@dataclass(slots=True)
class QueryContext:
    """Per-call routing options; only ``freshness`` participates in caching."""

    freshness: Freshness = Freshness.DEFAULT
    timezone: str | None = None
    deadline: float | None = None
    sort_by: str | None = None
    now: datetime | None = None


@dataclass(slots=True, frozen=True)
class OrderFilter:
    """Listing filter understood by record store clients."""

    status: str | None = None
    due_date_range: DateRange | None = None
    text_filter: str | None = None


@dataclass(slots=True)
class ScoredMatch:
    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VectorRecord:
    id: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScoredOrder:
    order: Order
    score: float
    source: str


@dataclass(slots=True, frozen=True)
class OrderFingerprint:
    order_id: str
    content_hash: str
    last_seen_at: int


@dataclass(slots=True)
class ChangeSet:
    new_orders: list[Order] = field(default_factory=list)
    updated_orders: list[Order] = field(default_factory=list)
    unchanged_orders: list[Order] = field(default_factory=list)
    deleted_order_ids: list[str] = field(default_factory=list)
    full_listing: bool = True

    @property
    def to_embed(self) -> list[Order]:
        return [*self.new_orders, *self.updated_orders]

    @property
    def has_changes(self) -> bool:
        return bool(self.new_orders or self.updated_orders or self.deleted_order_ids)

    def counts(self) -> dict[str, int]:
        return {
            "new": len(self.new_orders),
            "updated": len(self.updated_orders),
            "unchanged": len(self.unchanged_orders),
            "deleted": len(self.deleted_order_ids),
        }


@dataclass(slots=True)
class SyncError:
    stage: str
    batch: int
    order_ids: list[str]
    message: str


@dataclass(slots=True)
class SyncResult:
    run_id: str
    mode: str
    new_vectors: int = 0
    updated_vectors: int = 0
    deleted_vectors: int = 0
    unchanged_vectors: int = 0
    orphans_deleted: int = 0
    cache_entries_invalidated: int = 0
    duration: float = 0.0
    errors: list[SyncError] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.new_vectors + self.updated_vectors + self.deleted_vectors + self.orphans_deleted

    def raise_for_errors(self) -> None:
        if self.errors:
            raise PartialSyncFailure(self.run_id, self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "new_vectors": self.new_vectors,
            "updated_vectors": self.updated_vectors,
            "deleted_vectors": self.deleted_vectors,
            "unchanged_vectors": self.unchanged_vectors,
            "orphans_deleted": self.orphans_deleted,
            "cache_entries_invalidated": self.cache_entries_invalidated,
            "duration": self.duration,
            "errors": [
                {"stage": e.stage, "batch": e.batch, "order_ids": e.order_ids, "message": e.message}
                for e in self.errors
            ],
        }


@dataclass(slots=True)
class RoutedQueryResult:
    strategy: Strategy
    orders: list[Order] = field(default_factory=list)
    confidence: float = 0.0
    data_freshness: str = "fresh"
    fallbacks_used: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    scores: dict[str, float] = field(default_factory=dict)
    analytics: dict[str, Any] | None = None
    intent_type: IntentType | None = None
    cache_key: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.orders

    def to_cache_payload(self) -> dict[str, Any]:
        """The cacheable subset; timing and freshness are recomputed on read."""
        return {
            "strategy": self.strategy.value,
            "orders": [order.model_dump(mode="json") for order in self.orders],
            "confidence": self.confidence,
            "fallbacks_used": list(self.fallbacks_used),
            "scores": dict(self.scores),
            "analytics": self.analytics,
            "intent_type": self.intent_type.value if self.intent_type else None,
        }

    @classmethod
    def from_cache_payload(cls, payload: dict[str, Any], cache_key: str | None = None) -> "RoutedQueryResult":
        intent_type = payload.get("intent_type")
        return cls(
            strategy=Strategy(payload["strategy"]),
            orders=[Order.model_validate(item) for item in payload.get("orders", [])],
            confidence=float(payload.get("confidence", 0.0)),
            data_freshness="cached",
            fallbacks_used=list(payload.get("fallbacks_used", [])),
            scores=dict(payload.get("scores", {})),
            analytics=payload.get("analytics"),
            intent_type=IntentType(intent_type) if intent_type else None,
            cache_key=cache_key,
        )


__all__ = [
    "IntentType",
    "Strategy",
    "Freshness",
    "DateRange",
    "IntentEntities",
    "QueryIntent",
    "QueryContext",
    "OrderFilter",
    "ScoredMatch",
    "VectorRecord",
    "ScoredOrder",
    "OrderFingerprint",
    "ChangeSet",
    "SyncError",
    "SyncResult",
    "RoutedQueryResult",
]
