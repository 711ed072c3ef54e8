"""Tests for recall breadth and the relaxation ladder."""

from __future__ import annotations

import pytest

from conftest import make_order
from order_router.models.types import IntentEntities, IntentType, QueryIntent, ScoredOrder
from order_router.routing.relaxation import (
    Breadth,
    RelaxationLadder,
    TopKPolicy,
    classify_breadth,
    score_confidence,
)


def _scored(*scores: float) -> list[ScoredOrder]:
    return [ScoredOrder(order=make_order(index), score=score, source="vector") for index, score in enumerate(scores)]


def _intent(**entities) -> QueryIntent:
    return QueryIntent(type=IntentType.SEMANTIC_SEARCH, entities=IntentEntities(**entities))


def test_breadth_classification() -> None:
    assert classify_breadth("show all laser orders", _intent()) is Breadth.BROAD
    assert classify_breadth("job 51001", _intent(job_numbers=["51001"])) is Breadth.NARROW
    assert classify_breadth("orders for Acme", _intent(customer_names=["Acme"])) is Breadth.NARROW
    assert classify_breadth("rush jobs", _intent()) is Breadth.MEDIUM
    assert classify_breadth("eco friendly packaging", _intent()) is Breadth.STANDARD


def test_top_k_grows_with_breadth_and_is_capped() -> None:
    policy = TopKPolicy()
    values = [policy.top_k(breadth) for breadth in Breadth]
    assert values == sorted(values)
    assert policy.top_k(Breadth.MEDIUM, 2.0) == 50
    assert policy.top_k(Breadth.BROAD, 3.0) == 100


@pytest.mark.parametrize(
    "tiers",
    [
        {"narrow": 20, "standard": 15},
        {"narrow": 0},
        {"broad": 200, "max_top_k": 100},
    ],
)
def test_invalid_top_k_policies(tiers) -> None:
    with pytest.raises(ValueError):
        TopKPolicy(**tiers)


def test_ladder_thresholds_must_descend() -> None:
    with pytest.raises(ValueError):
        RelaxationLadder([0.4, 0.6])
    with pytest.raises(ValueError):
        RelaxationLadder([])


def test_first_tier_hit_records_no_fallback() -> None:
    outcome = RelaxationLadder().run(_scored(0.9, 0.3), keep=lambda tier: tier)
    assert outcome.threshold == 0.8
    assert outcome.fallbacks == []
    assert [item.score for item in outcome.matches] == [0.9]


def test_each_looser_tier_is_recorded() -> None:
    outcome = RelaxationLadder().run(_scored(0.3, 0.25, 0.1), keep=lambda tier: tier)
    assert outcome.threshold == 0.2
    assert outcome.fallbacks == ["relaxed-min-score:0.6", "relaxed-min-score:0.4", "relaxed-min-score:0.2"]
    assert [item.score for item in outcome.matches] == [0.3, 0.25]


def test_looser_tiers_never_lose_results() -> None:
    candidates = _scored(0.95, 0.7, 0.45, 0.2, 0.05)
    previous: set[str] = set()
    for threshold in (0.8, 0.6, 0.4, 0.2):
        outcome = RelaxationLadder([threshold]).run(candidates, keep=lambda tier: tier)
        kept = {item.order.job_number for item in outcome.matches}
        assert previous <= kept
        previous = kept


def test_exhausted_and_deadline_outcomes() -> None:
    exhausted = RelaxationLadder().run(_scored(0.9), keep=lambda tier: [])
    assert exhausted.exhausted
    assert exhausted.fallbacks[-1] == "ladder-exhausted"

    stopped = RelaxationLadder().run(_scored(0.1), keep=lambda tier: tier, expired=lambda: True)
    assert stopped.deadline_hit
    assert stopped.fallbacks == ["deadline-exceeded"]
    assert stopped.matches == []


@pytest.mark.parametrize(
    "scores, expected",
    [
        ([], 0.0),
        ([0.9, 0.85], 0.95),
        ([0.7, 0.6], 0.85),
        ([0.5, 0.4], 0.65),
        ([0.3, 0.25], 0.45),
        ([0.1], 0.25),
        ([0.9, 0.9, 0.9, 0.9, 0.9, 0.0], 0.95),
    ],
)
def test_score_confidence_buckets(scores, expected) -> None:
    assert score_confidence(scores) == expected
