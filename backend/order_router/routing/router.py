"""Strategy routing for order queries."""

from __future__ import annotations

import asyncio
import inspect
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, TypeVar

from rapidfuzz import fuzz, utils

from order_router.cache.keys import cache_key
from order_router.cache.store import QUERY_RESULT_TAG, ResultCache
from order_router.clients.base import EmbeddingClient, RecordStoreClient, VectorIndexClient
from order_router.clients.guard import guarded
from order_router.core.config import Settings
from order_router.core.errors import BackendUnavailable, RetrievalUnavailable
from order_router.core.logging import get_logger
from order_router.core.metrics import FALLBACKS, ROUTE_COUNT, ROUTE_LATENCY
from order_router.models.orders import Order
from order_router.models.projection import order_from_metadata, search_text
from order_router.models.types import (
    Freshness,
    IntentType,
    OrderFilter,
    QueryContext,
    QueryIntent,
    RoutedQueryResult,
    ScoredOrder,
    Strategy,
)
from order_router.routing.analytics import summarize
from order_router.routing.filters import EntityFilter, FilterCriteria, describe
from order_router.routing.intent import AMBIGUITY_PENALTY, IntentClassifier
from order_router.routing.relaxation import (
    DEADLINE_EXCEEDED,
    Breadth,
    RelaxationLadder,
    TopKPolicy,
    classify_breadth,
    score_confidence,
)
from order_router.utils.text import normalize_query
from order_router.utils.time import local_now, resolve_timezone

logger = get_logger(__name__)

T = TypeVar("T")

STORE_UNAVAILABLE = "store-unavailable"
VECTOR_UNAVAILABLE = "vector-unavailable"
ENRICHMENT_PARTIAL = "enrichment-partial"
DEGRADED = frozenset({STORE_UNAVAILABLE, VECTOR_UNAVAILABLE, ENRICHMENT_PARTIAL})

URGENCY_RE = re.compile(r"\b(today|tomorrow|due|overdue|late|rush|urgent|asap|now)\b", re.IGNORECASE)


class _DeadlineHit(Exception):
    """Raised internally when the route deadline, not a backend, ran out."""


@dataclass(slots=True)
class Deadline:
    budget: float
    clock: Callable[[], float] = time.monotonic
    started: float = 0.0

    def __post_init__(self) -> None:
        self.started = self.clock()

    def remaining(self) -> float:
        return self.budget - (self.clock() - self.started)

    def expired(self) -> bool:
        return self.remaining() <= 0


@dataclass(slots=True)
class _Retrieval:
    matches: list[ScoredOrder] = field(default_factory=list)
    confidence: float = 0.0
    fallbacks: list[str] = field(default_factory=list)
    deadline_hit: bool = False
    data_freshness: str = "fresh"
    # confidence already carries the classifier's ambiguity penalty
    from_intent: bool = False


def select_strategy(intent: QueryIntent) -> Strategy:
    """Pick the execution path for an intent.

    A named job number always goes straight to the record store. Otherwise
    aggregation, or tags combined with a date window, needs the hybrid path.
    """
    entities = intent.entities
    if entities.job_numbers:
        return Strategy.DIRECT
    if intent.type is IntentType.CALCULATION or (entities.tags and entities.date_ranges):
        return Strategy.HYBRID
    if intent.type is IntentType.EXACT_DATA:
        return Strategy.DIRECT
    return Strategy.VECTOR


class StrategyRouter:
    """Coordinates cache, classification, retrieval, filtering and caching.

    Within one ``route`` call the steps run strictly in sequence. Concurrent
    calls for the same key may each miss the cache and retrieve
    independently unless ``single_flight`` is enabled, in which case they
    share one in-flight task and its result object.
    """

    def __init__(
        self,
        settings: Settings,
        store: RecordStoreClient,
        embedder: EmbeddingClient,
        index: VectorIndexClient,
        cache: ResultCache,
        classifier: IntentClassifier | None = None,
        entity_filter: EntityFilter | None = None,
        ladder: RelaxationLadder | None = None,
        top_k: TopKPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.index = index
        self.cache = cache
        self.classifier = classifier or IntentClassifier(tz=resolve_timezone(settings.timezone))
        self.entity_filter = entity_filter or EntityFilter()
        self.ladder = ladder or RelaxationLadder(settings.relaxation_thresholds)
        self.top_k = top_k or TopKPolicy.from_settings(settings)
        self._clock = clock
        self._inflight: dict[str, asyncio.Future[RoutedQueryResult]] = {}

    async def route(self, query: str, context: QueryContext | None = None) -> RoutedQueryResult:
        context = context or QueryContext()
        started = time.perf_counter()
        key = cache_key(query, context.freshness)

        cached = self.cache.get(key)
        if cached is not None:
            result = RoutedQueryResult.from_cache_payload(cached, cache_key=key)
            result.processing_time = time.perf_counter() - started
            ROUTE_COUNT.labels(strategy=result.strategy.value, outcome="cached").inc()
            ROUTE_LATENCY.labels(strategy=result.strategy.value).observe(result.processing_time)
            logger.debug("Serving cached result", extra={"ctx_cache_key": key})
            return result

        if not self.settings.single_flight:
            return await self._execute(query, context, key, started)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._execute(query, context, key, started))
            self._inflight[key] = task
            task.add_done_callback(lambda _done: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    # ------------------------------------------------------------------

    async def _execute(self, query: str, context: QueryContext, key: str, started: float) -> RoutedQueryResult:
        deadline = Deadline(context.deadline or self.settings.route_deadline, clock=self._clock)
        tz = resolve_timezone(context.timezone or self.settings.timezone)
        now = local_now(tz, context.now)

        intent = await self.classifier.classify(query, now)
        planned = select_strategy(intent)
        criteria = FilterCriteria.from_entities(intent.entities, today=now.date())
        breadth = classify_breadth(query, intent)
        logger.info(
            "Routing query",
            extra={
                "ctx_strategy": planned.value,
                "ctx_intent": intent.type.value,
                "ctx_breadth": breadth.name.lower(),
                "ctx_filters": describe(criteria),
            },
        )

        try:
            executed, retrieval = await self._retrieve(query, intent, planned, criteria, breadth, deadline)
        except RetrievalUnavailable:
            ROUTE_COUNT.labels(strategy=planned.value, outcome="unavailable").inc()
            raise
        except _DeadlineHit:
            executed, retrieval = planned, _Retrieval(fallbacks=[DEADLINE_EXCEEDED], deadline_hit=True)

        matches = self._sort(retrieval.matches, context.sort_by or self.settings.sort_by)
        orders = [item.order for item in matches]
        analytics = summarize(orders, now.date()) if intent.type is IntentType.CALCULATION else None
        if intent.entities.limit:
            matches = matches[: intent.entities.limit]
            orders = orders[: intent.entities.limit]

        confidence = retrieval.confidence if orders else 0.0
        if intent.missing_entities and not retrieval.from_intent:
            confidence *= AMBIGUITY_PENALTY
        if retrieval.deadline_hit:
            confidence *= self.settings.deadline_confidence_penalty
        fallbacks = list(dict.fromkeys(retrieval.fallbacks))

        result = RoutedQueryResult(
            strategy=executed,
            orders=orders,
            confidence=round(confidence, 4),
            data_freshness=retrieval.data_freshness,
            fallbacks_used=fallbacks,
            scores={item.order.job_number: round(item.score, 4) for item in matches},
            analytics=analytics,
            intent_type=intent.type,
            cache_key=key,
        )

        if self._cacheable(result, retrieval):
            self.cache.set(
                key,
                result.to_cache_payload(),
                ttl=self._ttl(query, intent, executed, context),
                tags=[QUERY_RESULT_TAG, executed.value],
            )

        result.processing_time = time.perf_counter() - started
        ROUTE_COUNT.labels(strategy=executed.value, outcome="empty" if result.is_empty else "ok").inc()
        ROUTE_LATENCY.labels(strategy=executed.value).observe(result.processing_time)
        for fallback in fallbacks:
            FALLBACKS.labels(fallback=fallback.split(":", 1)[0]).inc()
        return result

    async def _retrieve(
        self,
        query: str,
        intent: QueryIntent,
        planned: Strategy,
        criteria: FilterCriteria,
        breadth: Breadth,
        deadline: Deadline,
    ) -> tuple[Strategy, _Retrieval]:
        failures: list[BackendUnavailable] = []
        if planned is Strategy.DIRECT:
            try:
                return planned, await self._direct(intent, criteria, deadline)
            except BackendUnavailable as exc:
                logger.warning("Record store unavailable, degrading to vector search: %s", exc)
                failures.append(exc)
            try:
                retrieval = await self._vector(query, criteria, breadth, deadline)
            except BackendUnavailable as exc:
                failures.append(exc)
                raise RetrievalUnavailable(query, failures) from exc
            retrieval.fallbacks.insert(0, STORE_UNAVAILABLE)
            return Strategy.VECTOR, retrieval

        try:
            if planned is Strategy.HYBRID:
                return planned, await self._hybrid(query, criteria, breadth, deadline)
            return planned, await self._vector(query, criteria, breadth, deadline)
        except BackendUnavailable as exc:
            logger.warning("Vector search unavailable, degrading to record store listing: %s", exc)
            failures.append(exc)
        try:
            retrieval = await self._lexical(query, criteria, deadline)
        except BackendUnavailable as exc:
            failures.append(exc)
            raise RetrievalUnavailable(query, failures) from exc
        retrieval.fallbacks.insert(0, VECTOR_UNAVAILABLE)
        return Strategy.DIRECT, retrieval

    async def _direct(self, intent: QueryIntent, criteria: FilterCriteria, deadline: Deadline) -> _Retrieval:
        entities = intent.entities
        if entities.job_numbers:
            orders: list[Order] = []
            for job_number in entities.job_numbers:
                order = await self._call(
                    "record_store", self.store.get_order(job_number), self.settings.store_timeout, deadline
                )
                if order is not None:
                    orders.append(order)
        else:
            window = criteria.enclosing_window if criteria.date_field == "due" else None
            orders = await self._call(
                "record_store",
                self.store.list_orders(OrderFilter(due_date_range=window)),
                self.settings.store_timeout,
                deadline,
            )
        kept = self.entity_filter.apply(orders, criteria)
        return _Retrieval(
            matches=[ScoredOrder(order=order, score=1.0, source="record_store") for order in kept],
            confidence=intent.confidence,
            from_intent=True,
        )

    async def _recall(
        self, query: str, breadth: Breadth, deadline: Deadline, multiplier: float = 1.0
    ) -> list[ScoredOrder]:
        vector = await self._call("embedding", self.embedder.embed(query), self.settings.embed_timeout, deadline)
        top_k = self.top_k.top_k(breadth, multiplier)
        matches = await self._call(
            "vector_index", self.index.query(vector, top_k), self.settings.vector_timeout, deadline
        )
        return [
            ScoredOrder(order=order_from_metadata(match.metadata, match.id), score=match.score, source="vector")
            for match in matches
        ]

    async def _vector(self, query: str, criteria: FilterCriteria, breadth: Breadth, deadline: Deadline) -> _Retrieval:
        candidates = await self._recall(query, breadth, deadline)
        retrieval = self._climb(candidates, criteria, deadline)
        retrieval.data_freshness = "stale"
        return retrieval

    async def _hybrid(self, query: str, criteria: FilterCriteria, breadth: Breadth, deadline: Deadline) -> _Retrieval:
        candidates = await self._recall(query, breadth, deadline, self.settings.hybrid_recall_multiplier)
        candidates, notes, deadline_hit = await self._enrich(candidates, deadline)
        retrieval = self._climb(candidates, criteria, deadline)
        retrieval.fallbacks = notes + retrieval.fallbacks
        retrieval.deadline_hit = retrieval.deadline_hit or deadline_hit
        return retrieval

    async def _lexical(self, query: str, criteria: FilterCriteria, deadline: Deadline) -> _Retrieval:
        orders = await self._call(
            "record_store", self.store.list_orders(OrderFilter()), self.settings.store_timeout, deadline
        )
        needle = normalize_query(query)
        candidates = [
            ScoredOrder(
                order=order,
                score=fuzz.token_set_ratio(needle, search_text(order), processor=utils.default_process) / 100.0,
                source="lexical",
            )
            for order in orders
        ]
        candidates.sort(key=lambda item: item.score, reverse=True)
        return self._climb(candidates, criteria, deadline)

    async def _enrich(
        self, candidates: list[ScoredOrder], deadline: Deadline
    ) -> tuple[list[ScoredOrder], list[str], bool]:
        """Refresh the best ``max_enrichment`` hits from the record store.

        Orders the store no longer knows are dropped. A failed refresh keeps
        the indexed projection and is reported as ``enrichment-partial``.
        """
        head = candidates[: self.settings.max_enrichment]
        tail = candidates[self.settings.max_enrichment :]
        if not head:
            return candidates, [], False
        semaphore = asyncio.Semaphore(self.settings.enrichment_concurrency)

        async def refresh(candidate: ScoredOrder) -> Order | None:
            async with semaphore:
                return await self._call(
                    "record_store",
                    self.store.get_order(candidate.order.job_number),
                    self.settings.store_timeout,
                    deadline,
                )

        outcomes = await asyncio.gather(*(refresh(candidate) for candidate in head), return_exceptions=True)
        enriched: list[ScoredOrder] = []
        notes: list[str] = []
        deadline_hit = False
        for candidate, outcome in zip(head, outcomes):
            if isinstance(outcome, _DeadlineHit):
                deadline_hit = True
                enriched.append(candidate)
            elif isinstance(outcome, Exception):
                if ENRICHMENT_PARTIAL not in notes:
                    logger.warning("Enrichment failed for some hits: %s", outcome)
                    notes.append(ENRICHMENT_PARTIAL)
                enriched.append(candidate)
            elif isinstance(outcome, BaseException):
                raise outcome
            elif outcome is not None:
                enriched.append(ScoredOrder(order=outcome, score=candidate.score, source="enriched"))
        if deadline_hit:
            notes.append(DEADLINE_EXCEEDED)
        return enriched + tail, notes, deadline_hit

    def _climb(self, candidates: list[ScoredOrder], criteria: FilterCriteria, deadline: Deadline) -> _Retrieval:
        outcome = self.ladder.run(
            candidates,
            keep=lambda tier: self.entity_filter.apply_by(tier, criteria, key=lambda item: item.order),
            expired=deadline.expired,
        )
        confidence = 0.0 if outcome.exhausted else score_confidence([item.score for item in outcome.matches])
        return _Retrieval(
            matches=outcome.matches,
            confidence=confidence,
            fallbacks=list(outcome.fallbacks),
            deadline_hit=outcome.deadline_hit,
        )

    async def _call(self, backend: str, awaitable: Awaitable[T], timeout: float, deadline: Deadline) -> T:
        remaining = deadline.remaining()
        if remaining <= 0:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise _DeadlineHit(backend)
        try:
            return await guarded(backend, awaitable, min(timeout, remaining))
        except BackendUnavailable as exc:
            # a timeout capped by the route deadline is the deadline's, not the backend's
            if exc.timed_out and (remaining <= timeout or deadline.expired()):
                raise _DeadlineHit(backend) from exc
            raise

    @staticmethod
    def _sort(matches: list[ScoredOrder], sort_by: str) -> list[ScoredOrder]:
        if sort_by == "due_date":
            return sorted(matches, key=lambda item: (item.order.dates.due is None, item.order.dates.due or date.max))
        if sort_by == "priority":
            return sorted(matches, key=lambda item: (not item.order.time_sensitive, -item.score))
        return sorted(matches, key=lambda item: item.score, reverse=True)

    def _ttl(self, query: str, intent: QueryIntent, executed: Strategy, context: QueryContext) -> float:
        entities = intent.entities
        if (
            context.freshness is Freshness.FRESH
            or intent.type is IntentType.EXACT_DATA
            or entities.date_ranges
            or entities.overdue
            or URGENCY_RE.search(query)
        ):
            return self.settings.cache_ttl_fresh
        if executed is Strategy.HYBRID or intent.type is IntentType.CALCULATION:
            return self.settings.cache_ttl_default
        return self.settings.cache_ttl_semantic

    @staticmethod
    def _cacheable(result: RoutedQueryResult, retrieval: _Retrieval) -> bool:
        if result.confidence <= 0 or retrieval.deadline_hit:
            return False
        return not any(fallback in DEGRADED for fallback in result.fallbacks_used)


def result_summary(result: RoutedQueryResult) -> dict[str, Any]:
    """Compact, JSON-ready view of a result for logs and the CLI."""
    return {
        "strategy": result.strategy.value,
        "intent": result.intent_type.value if result.intent_type else None,
        "confidence": result.confidence,
        "data_freshness": result.data_freshness,
        "fallbacks_used": result.fallbacks_used,
        "processing_time": round(result.processing_time, 4),
        "orders": [
            {
                "job_number": order.job_number,
                "customer": order.customer.name,
                "status": order.status.master,
                "date_due": order.dates.due.isoformat() if order.dates.due else None,
                "tags": order.tag_texts,
                "score": result.scores.get(order.job_number),
            }
            for order in result.orders
        ],
        "analytics": result.analytics,
    }


__all__ = ["StrategyRouter", "Deadline", "select_strategy", "result_summary"]
