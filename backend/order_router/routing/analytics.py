"""Aggregates attached to calculation queries."""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Any, Sequence

from order_router.models.orders import Order


def summarize(orders: Sequence[Order], today: date) -> dict[str, Any]:
    statuses = Counter(order.status.master or "unknown" for order in orders)
    customers: dict[str, dict[str, float]] = {}
    for order in orders:
        name = order.customer.name or "unknown"
        bucket = customers.setdefault(name, {"orders": 0, "value": 0.0})
        bucket["orders"] += 1
        bucket["value"] = round(bucket["value"] + order.order_value, 2)
    return {
        "total_orders": len(orders),
        "total_value": round(sum(order.order_value for order in orders), 2),
        "status_breakdown": dict(statuses.most_common()),
        "customer_breakdown": dict(sorted(customers.items(), key=lambda item: item[1]["value"], reverse=True)),
        "overdue_orders": sum(1 for order in orders if order.is_overdue(today)),
        "priority_orders": sum(1 for order in orders if order.time_sensitive),
    }


__all__ = ["summarize"]
