"""Intent classification for order queries."""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, tzinfo

from order_router.core.errors import AmbiguousIntent
from order_router.core.logging import get_logger
from order_router.models.types import IntentEntities, IntentType, QueryIntent
from order_router.routing.dates import DateParser
from order_router.routing.extractors import EntityExtractor, RuleBasedExtractor
from order_router.routing.tags import dedupe_tags, tag_variants
from order_router.utils.time import local_now

logger = get_logger(__name__)

TEMPORAL_RE = re.compile(r"\b(today|tomorrow|due|overdue|rush|urgent)\b", re.IGNORECASE)
AGGREGATE_RE = re.compile(r"\b(total|reach|prioritize|prioritise|how\s+many)\b", re.IGNORECASE)
SIMILARITY_RE = re.compile(r"\blike\b", re.IGNORECASE)

# Intent rules in precedence order: (type, confidence, reason)
_EXACT_JOB = (IntentType.EXACT_DATA, 0.9, "job number")
_EXACT_TEMPORAL = (IntentType.EXACT_DATA, 0.85, "temporal keyword")
_CALCULATION = (IntentType.CALCULATION, 0.8, "aggregate keyword")
_SIMILARITY = (IntentType.SEMANTIC_SEARCH, 0.7, "similarity or process language")
_DEFAULT = (IntentType.SEMANTIC_SEARCH, 0.5, "no specific signal")

AMBIGUITY_PENALTY = 0.5


class IntentClassifier:
    """Turn free text into a :class:`QueryIntent`.

    The extractor supplies entities; the classifier owns the type
    precedence, the date resolution and the tag normalization, so swapping
    extractors does not change routing behaviour.
    """

    def __init__(
        self,
        extractor: EntityExtractor | None = None,
        tz: tzinfo | None = None,
        date_parser: DateParser | None = None,
        extractor_timeout: float = 8.0,
    ) -> None:
        self.extractor = extractor or RuleBasedExtractor()
        if date_parser is None:
            if tz is None:
                raise ValueError("either tz or date_parser is required")
            date_parser = DateParser(tz)
        self.date_parser = date_parser
        self.extractor_timeout = extractor_timeout

    async def classify(self, query: str, now: datetime | None = None) -> QueryIntent:
        current = now if now is not None and now.tzinfo is not None else local_now(self.date_parser.tz, now)
        missing: list[str] = []
        try:
            entities = await asyncio.wait_for(
                self.extractor.extract(query, current), timeout=self.extractor_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Entity extractor timed out; using rule-based extraction")
            entities = await RuleBasedExtractor().extract(query, current)

        try:
            parsed = self.date_parser.parse(query, current)
        except AmbiguousIntent as exc:
            logger.info("Unresolved %s in query: %s", exc.entity, exc.phrase)
            missing.append(exc.entity)
            parsed = []
        entities.date_ranges = _merge_ranges(entities.date_ranges, parsed)
        _normalize_tags(entities)

        intent_type, confidence, reason = self._select(query, entities)
        if missing:
            confidence *= AMBIGUITY_PENALTY
        intent = QueryIntent(
            type=intent_type,
            entities=entities,
            confidence=round(confidence, 4),
            missing_entities=missing,
            explanation=reason,
        )
        logger.debug(
            "Classified query",
            extra={"ctx_intent": intent_type.value, "ctx_confidence": intent.confidence, "ctx_reason": reason},
        )
        return intent

    @staticmethod
    def _select(query: str, entities: IntentEntities) -> tuple[IntentType, float, str]:
        if any(any(ch.isdigit() for ch in number) for number in entities.job_numbers):
            return _EXACT_JOB
        if TEMPORAL_RE.search(query):
            return _EXACT_TEMPORAL
        if AGGREGATE_RE.search(query):
            return _CALCULATION
        if SIMILARITY_RE.search(query) or entities.keywords:
            return _SIMILARITY
        return _DEFAULT


def _normalize_tags(entities: IntentEntities) -> None:
    entities.exclude_tags = dedupe_tags(entities.exclude_tags)
    excluded: set[str] = set()
    for tag in entities.exclude_tags:
        excluded |= tag_variants(tag)
    entities.tags = [tag for tag in dedupe_tags(entities.tags) if not tag_variants(tag) & excluded]


def _merge_ranges(first: list, second: list) -> list:
    merged = list(first)
    seen = {(item.start, item.end) for item in merged}
    for item in second:
        if (item.start, item.end) not in seen:
            seen.add((item.start, item.end))
            merged.append(item)
    return merged


__all__ = ["IntentClassifier", "AMBIGUITY_PENALTY"]
