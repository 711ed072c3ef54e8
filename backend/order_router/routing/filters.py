"""Exact filtering of candidate orders by extracted entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Literal, Sequence, TypeVar

from rapidfuzz import fuzz, utils

from order_router.models.orders import Order
from order_router.models.types import DateRange, IntentEntities
from order_router.routing.tags import matches_any

T = TypeVar("T")

DateField = Literal["due", "entered"]
CUSTOMER_MATCH_THRESHOLD = 85.0


@dataclass(slots=True)
class FilterCriteria:
    tags: list[str] = field(default_factory=list)
    exclude_tags: list[str] = field(default_factory=list)
    date_ranges: list[DateRange] = field(default_factory=list)
    date_field: DateField = "due"
    customer_names: list[str] = field(default_factory=list)
    overdue: bool = False
    today: date | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.tags or self.exclude_tags or self.date_ranges or self.customer_names or self.overdue)

    @property
    def enclosing_window(self) -> DateRange | None:
        """Smallest single window covering every date range, for coarse pre-filtering."""
        if not self.date_ranges:
            return None
        return DateRange(
            start=min(item.start for item in self.date_ranges),
            end=max(item.end for item in self.date_ranges),
        )

    @classmethod
    def from_entities(
        cls,
        entities: IntentEntities,
        today: date | None = None,
        include_customers: bool = True,
    ) -> "FilterCriteria":
        return cls(
            tags=list(entities.tags),
            exclude_tags=list(entities.exclude_tags),
            date_ranges=list(entities.date_ranges),
            customer_names=list(entities.customer_names) if include_customers else [],
            overdue=entities.overdue,
            today=today,
        )


class EntityFilter:
    """Applies date, tag, customer and overdue predicates to orders.

    Each predicate looks at one order at a time, so the surviving set does
    not depend on the order the predicates run in. Several date ranges are a
    union: an order passes when any of them contains its date.
    """

    def __init__(self, customer_threshold: float = CUSTOMER_MATCH_THRESHOLD) -> None:
        self.customer_threshold = customer_threshold

    def apply(self, orders: Sequence[Order], criteria: FilterCriteria) -> list[Order]:
        return self.apply_by(orders, criteria, key=lambda order: order)

    def apply_by(self, items: Sequence[T], criteria: FilterCriteria, key: Callable[[T], Order]) -> list[T]:
        """Filter arbitrary wrappers (scored hits) by the order ``key`` returns."""
        result = list(items)
        for predicate in self.predicates(criteria):
            result = [item for item in result if predicate(key(item))]
        return result

    def predicates(self, criteria: FilterCriteria) -> list[Callable[[Order], bool]]:
        checks: list[Callable[[Order], bool]] = []
        if criteria.date_ranges:
            checks.append(lambda order: _in_any_range(order, criteria.date_ranges, criteria.date_field))
        if criteria.tags:
            checks.append(lambda order: matches_any(criteria.tags, order.tag_texts))
        if criteria.exclude_tags:
            checks.append(lambda order: not matches_any(criteria.exclude_tags, order.tag_texts))
        if criteria.customer_names:
            checks.append(lambda order: self._customer_matches(order, criteria.customer_names))
        if criteria.overdue:
            today = criteria.today or date.today()
            checks.append(lambda order: order.is_overdue(today))
        return checks

    def _customer_matches(self, order: Order, names: Sequence[str]) -> bool:
        if not order.customer.name:
            return False
        return any(
            fuzz.partial_ratio(name, order.customer.name, processor=utils.default_process) >= self.customer_threshold
            for name in names
        )


def _in_any_range(order: Order, ranges: Sequence[DateRange], date_field: DateField) -> bool:
    value = order.dates.due if date_field == "due" else order.dates.entered
    return any(item.contains(value) for item in ranges)


def describe(criteria: FilterCriteria) -> str:
    parts = []
    if criteria.date_ranges:
        windows = " or ".join(
            f"{item.label or 'range'} [{item.start.date()}..{item.end.date()}]" for item in criteria.date_ranges
        )
        parts.append(f"{criteria.date_field} {windows}")
    if criteria.tags:
        parts.append("tags any of " + ", ".join(criteria.tags))
    if criteria.exclude_tags:
        parts.append("excluding " + ", ".join(criteria.exclude_tags))
    if criteria.customer_names:
        parts.append("customer " + " or ".join(criteria.customer_names))
    if criteria.overdue:
        parts.append("overdue")
    return "; ".join(parts) or "no filters"


__all__ = ["FilterCriteria", "EntityFilter", "describe", "DateField"]
