"""Tests for intent classification and entity extraction."""

from __future__ import annotations

import asyncio

import pytest

from conftest import TZ, WEDNESDAY
from order_router.models.types import IntentEntities, IntentType
from order_router.routing.extractors import LLMEntityExtractor, RuleBasedExtractor
from order_router.routing.intent import IntentClassifier


@pytest.fixture
def classifier() -> IntentClassifier:
    return IntentClassifier(tz=TZ)


@pytest.mark.asyncio
async def test_job_number_wins_over_everything(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("what is the total on job 51001 due today", WEDNESDAY)
    assert intent.type is IntentType.EXACT_DATA
    assert intent.confidence == 0.9
    assert intent.entities.job_numbers == ["51001"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, expected, confidence",
    [
        ("what's due today", IntentType.EXACT_DATA, 0.85),
        ("any rush orders", IntentType.EXACT_DATA, 0.85),
        ("how many orders will reach $10000", IntentType.CALCULATION, 0.8),
        ("which orders should we prioritize", IntentType.CALCULATION, 0.8),
        ("jackets like the brewery order", IntentType.SEMANTIC_SEARCH, 0.7),
        ("embroidered polos", IntentType.SEMANTIC_SEARCH, 0.7),
        ("eco friendly packaging", IntentType.SEMANTIC_SEARCH, 0.5),
    ],
)
async def test_type_precedence(
    classifier: IntentClassifier, query: str, expected: IntentType, confidence: float
) -> None:
    intent = await classifier.classify(query, WEDNESDAY)
    assert intent.type is expected
    assert intent.confidence == confidence


@pytest.mark.asyncio
async def test_currency_is_not_a_job_number(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("how many orders will reach $10000", WEDNESDAY)
    assert intent.entities.job_numbers == []


@pytest.mark.asyncio
async def test_tags_and_exclusions(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("orders tagged gamma excluding 'ps done'", WEDNESDAY)
    assert intent.entities.tags == ["gamma"]
    assert intent.entities.exclude_tags == ["ps done"]

    intent = await classifier.classify("@rush orders not tagged rush", WEDNESDAY)
    assert intent.entities.tags == []
    assert intent.entities.exclude_tags == ["rush"]


@pytest.mark.asyncio
async def test_at_tags_and_production(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("tagged @laser", WEDNESDAY)
    assert intent.entities.tags == ["@laser"]
    assert intent.type is IntentType.SEMANTIC_SEARCH

    intent = await classifier.classify("jobs in production", WEDNESDAY)
    assert intent.entities.tags == ["production"]


@pytest.mark.asyncio
async def test_dates_are_resolved_in_context(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("orders due this week", WEDNESDAY)
    [window] = intent.entities.date_ranges
    assert window.start.day == 12 and window.end.day == 18
    assert window.start.tzinfo is TZ


@pytest.mark.asyncio
async def test_unresolved_date_lowers_confidence(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("orders due soon", WEDNESDAY)
    assert intent.missing_entities == ["date_range"]
    assert intent.is_ambiguous
    assert intent.entities.date_ranges == []
    assert intent.confidence == pytest.approx(0.425)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query, day",
    [("orders due Friday", 16), ("orders due Oct 20", 20), ("orders due 10/20", 20)],
)
async def test_weekday_and_month_day_phrases_become_ranges(
    classifier: IntentClassifier, query: str, day: int
) -> None:
    intent = await classifier.classify(query, WEDNESDAY)
    assert intent.missing_entities == []
    assert intent.confidence == 0.85
    [window] = intent.entities.date_ranges
    assert window.start.day == window.end.day == day


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["orders due end of month", "orders due today or over the weekend"])
async def test_unparsed_date_language_is_reported_missing(classifier: IntentClassifier, query: str) -> None:
    intent = await classifier.classify(query, WEDNESDAY)
    assert intent.missing_entities == ["date_range"]
    assert intent.entities.date_ranges == []
    assert intent.confidence == pytest.approx(0.425)


@pytest.mark.asyncio
async def test_limit_customer_and_overdue(classifier: IntentClassifier) -> None:
    intent = await classifier.classify("show me 5 orders for Blue Ridge Brewing", WEDNESDAY)
    assert intent.entities.limit == 5
    assert intent.entities.customer_names == ["Blue Ridge Brewing"]

    intent = await classifier.classify("which jobs are past due", WEDNESDAY)
    assert intent.entities.overdue


def test_known_customers_are_fuzzy_matched() -> None:
    extractor = RuleBasedExtractor(known_customers=["Coastal Credit Union", "Blue Ridge Brewing"])
    entities = extractor.extract_sync("anything open for coastal credit union?")
    assert "Coastal Credit Union" in entities.customer_names
    assert "Blue Ridge Brewing" not in entities.customer_names


@pytest.mark.asyncio
async def test_llm_extractor_reply_is_used() -> None:
    async def complete(prompt: str) -> str:
        assert "Today is 2026-10-14" in prompt
        return '```json\n{"tags": ["Laser"], "date_ranges": [{"start": "2026-10-12", "end": "2026-10-18"}]}\n```'

    entities = await LLMEntityExtractor(complete).extract("laser stuff this week", WEDNESDAY)
    assert entities.tags == ["laser"]
    [window] = entities.date_ranges
    assert window.start.tzinfo is TZ
    assert window.end.day == 18


@pytest.mark.asyncio
async def test_llm_extractor_falls_back_on_garbage() -> None:
    async def complete(prompt: str) -> str:
        return "I am not JSON"

    entities = await LLMEntityExtractor(complete).extract("orders tagged rush", WEDNESDAY)
    assert entities.tags == ["rush"]


@pytest.mark.asyncio
async def test_slow_extractor_falls_back_to_rules() -> None:
    class SlowExtractor:
        async def extract(self, query, now) -> IntentEntities:
            await asyncio.sleep(5)
            return IntentEntities()

    classifier = IntentClassifier(extractor=SlowExtractor(), tz=TZ, extractor_timeout=0.05)
    intent = await classifier.classify("orders tagged rush", WEDNESDAY)
    assert intent.entities.tags == ["rush"]
