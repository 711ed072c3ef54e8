"""Dynamic recall breadth and the similarity relaxation ladder."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Sequence

from order_router.core.config import Settings
from order_router.models.types import QueryIntent, ScoredOrder

BROAD_RE = re.compile(r"\b(all|every|complete|entire|everything)\b", re.IGNORECASE)
MEDIUM_RE = re.compile(
    r"\b(today|tomorrow|due|overdue|late|rush|urgent|asap|priority|week|month)\b", re.IGNORECASE
)

DEADLINE_EXCEEDED = "deadline-exceeded"
LADDER_EXHAUSTED = "ladder-exhausted"


class Breadth(IntEnum):
    NARROW = 0
    STANDARD = 1
    MEDIUM = 2
    BROAD = 3


def classify_breadth(query: str, intent: QueryIntent) -> Breadth:
    """Scope of a query, from one specific order up to the whole book."""
    entities = intent.entities
    if BROAD_RE.search(query):
        return Breadth.BROAD
    if entities.job_numbers or len(entities.customer_names) == 1:
        return Breadth.NARROW
    if MEDIUM_RE.search(query) or entities.date_ranges or entities.tags or entities.keywords:
        return Breadth.MEDIUM
    return Breadth.STANDARD


@dataclass(slots=True, frozen=True)
class TopKPolicy:
    narrow: int = 5
    standard: int = 15
    medium: int = 25
    broad: int = 50
    max_top_k: int = 100

    def __post_init__(self) -> None:
        tiers = [self.narrow, self.standard, self.medium, self.broad]
        if any(tier < 1 for tier in tiers):
            raise ValueError("top_k tiers must be positive")
        if any(later < earlier for earlier, later in zip(tiers, tiers[1:])):
            raise ValueError("top_k tiers must be non-decreasing with breadth")
        if self.broad > self.max_top_k:
            raise ValueError("broadest top_k tier exceeds max_top_k")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TopKPolicy":
        return cls(
            narrow=settings.top_k_narrow,
            standard=settings.top_k_standard,
            medium=settings.top_k_medium,
            broad=settings.top_k_broad,
            max_top_k=settings.max_top_k,
        )

    def top_k(self, breadth: Breadth, multiplier: float = 1.0) -> int:
        base = (self.narrow, self.standard, self.medium, self.broad)[int(breadth)]
        return min(self.max_top_k, max(1, math.ceil(base * multiplier)))


@dataclass(slots=True)
class LadderOutcome:
    matches: list[ScoredOrder] = field(default_factory=list)
    threshold: float | None = None
    fallbacks: list[str] = field(default_factory=list)
    exhausted: bool = False
    deadline_hit: bool = False


class RelaxationLadder:
    """Walks descending minimum-score thresholds until the filter keeps something.

    Candidates are fetched once by the caller; each tier only re-filters
    them locally. Every tier looser than the first that gets evaluated is
    recorded as ``relaxed-min-score:<threshold>``.
    """

    def __init__(self, thresholds: Sequence[float] = (0.8, 0.6, 0.4, 0.2)) -> None:
        values = list(thresholds)
        if not values:
            raise ValueError("at least one threshold is required")
        if any(later >= earlier for earlier, later in zip(values, values[1:])):
            raise ValueError("thresholds must be strictly descending")
        self.thresholds = values

    def run(
        self,
        candidates: Sequence[ScoredOrder],
        keep: Callable[[list[ScoredOrder]], list[ScoredOrder]],
        expired: Callable[[], bool] | None = None,
    ) -> LadderOutcome:
        outcome = LadderOutcome()
        for position, threshold in enumerate(self.thresholds):
            if position > 0:
                if expired is not None and expired():
                    outcome.fallbacks.append(DEADLINE_EXCEEDED)
                    outcome.deadline_hit = True
                    return outcome
                outcome.fallbacks.append(f"relaxed-min-score:{threshold:g}")
            tier = [candidate for candidate in candidates if candidate.score >= threshold]
            survivors = keep(tier)
            if survivors:
                outcome.matches = sorted(survivors, key=lambda item: item.score, reverse=True)
                outcome.threshold = threshold
                return outcome
        outcome.fallbacks.append(LADDER_EXHAUSTED)
        outcome.exhausted = True
        return outcome


def score_confidence(scores: Sequence[float]) -> float:
    """Confidence from the mean of the five best similarity scores."""
    if not scores:
        return 0.0
    top = sorted(scores, reverse=True)[:5]
    average = sum(top) / len(top)
    if average >= 0.8:
        return 0.95
    if average >= 0.6:
        return 0.85
    if average >= 0.4:
        return 0.65
    if average >= 0.2:
        return 0.45
    return 0.25


__all__ = [
    "Breadth",
    "classify_breadth",
    "TopKPolicy",
    "LadderOutcome",
    "RelaxationLadder",
    "score_confidence",
    "DEADLINE_EXCEEDED",
    "LADDER_EXHAUSTED",
]
