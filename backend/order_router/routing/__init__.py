"""Query routing components."""

from .intent import IntentClassifier
from .filters import EntityFilter, FilterCriteria
from .relaxation import RelaxationLadder, TopKPolicy
from .router import StrategyRouter

__all__ = [
    "IntentClassifier",
    "EntityFilter",
    "FilterCriteria",
    "RelaxationLadder",
    "TopKPolicy",
    "StrategyRouter",
]
