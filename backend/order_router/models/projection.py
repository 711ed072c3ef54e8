"""Projections of orders into vector records and back."""

from __future__ import annotations

from typing import Any

from order_router.models.orders import Order
from order_router.utils.text import normalize, truncate

VECTOR_ID_PREFIX = "order-"
DESCRIPTION_LIMIT = 500


def vector_id(job_number: str) -> str:
    return f"{VECTOR_ID_PREFIX}{job_number}"


def job_number_from_vector_id(identifier: str) -> str:
    if identifier.startswith(VECTOR_ID_PREFIX):
        return identifier[len(VECTOR_ID_PREFIX) :]
    return identifier


def search_text(order: Order) -> str:
    """Text that is embedded for an order."""
    parts = [f"Job {order.job_number}"]
    if order.order_number:
        parts.append(f"Order {order.order_number}")
    if order.customer.name:
        parts.append(f"Customer: {order.customer.name}")
    if order.description:
        parts.append(f"Description: {order.description}")
    if order.comments:
        parts.append(f"Comments: {order.comments}")
    parts.append(f"Status: {order.status.master} - {order.status.stock}")
    if order.tags:
        parts.append(f"Tags: {', '.join(order.tag_texts)}")
    if order.time_sensitive:
        parts.append("Priority: time sensitive")
    line_details = []
    for item in order.line_items:
        detail = [item.description]
        if item.category:
            detail.append(f"Category: {item.category}")
        if item.materials:
            detail.append(f"Materials: {', '.join(item.materials)}")
        if item.processes:
            detail.append(f"Processes: {', '.join(item.processes)}")
        line_details.append(" | ".join(part for part in detail if part))
    if line_details:
        parts.append(f"Line Items: {' ;; '.join(line_details)}")
    return normalize(". ".join(parts))


def order_metadata(order: Order, description_limit: int = DESCRIPTION_LIMIT) -> dict[str, Any]:
    """Bounded, denormalized projection stored next to each vector."""
    return {
        "job_number": order.job_number,
        "order_number": order.order_number,
        "customer_id": order.customer.id,
        "customer_name": order.customer.name,
        "status": order.status.master,
        "stock_status": order.status.stock,
        "date_due": order.dates.due.isoformat() if order.dates.due else None,
        "date_entered": order.dates.entered.isoformat() if order.dates.entered else None,
        "description": truncate(order.description, description_limit),
        "tags": order.tag_texts,
        "total": order.order_value,
        "time_sensitive": order.time_sensitive,
    }


def order_from_metadata(metadata: dict[str, Any], fallback_id: str | None = None) -> Order:
    """Rebuild a partial order from vector metadata without a store round trip."""
    job_number = metadata.get("job_number") or job_number_from_vector_id(fallback_id or "")
    return Order.model_validate(
        {
            "job_number": job_number,
            "order_number": metadata.get("order_number"),
            "customer": {"id": metadata.get("customer_id"), "name": metadata.get("customer_name") or ""},
            "description": metadata.get("description") or "",
            "status": {"master": metadata.get("status") or "", "stock": metadata.get("stock_status") or ""},
            "dates": {"due": metadata.get("date_due"), "entered": metadata.get("date_entered")},
            "total": metadata.get("total") or 0.0,
            "tags": list(metadata.get("tags") or []),
            "time_sensitive": bool(metadata.get("time_sensitive")),
        }
    )


__all__ = [
    "VECTOR_ID_PREFIX",
    "vector_id",
    "job_number_from_vector_id",
    "search_text",
    "order_metadata",
    "order_from_metadata",
]
