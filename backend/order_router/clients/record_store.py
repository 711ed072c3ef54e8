"""Local record store implementations serving order snapshots."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import orjson

from order_router.core.logging import get_logger
from order_router.models.orders import Order
from order_router.models.types import OrderFilter

logger = get_logger(__name__)


class InMemoryRecordStore:
    """Record store backed by a dict of orders keyed by job number."""

    def __init__(self, orders: Iterable[Order] = ()) -> None:
        self._orders: dict[str, Order] = {}
        self.replace(orders)

    def replace(self, orders: Iterable[Order]) -> None:
        self._orders = {order.job_number: order for order in orders}

    def put(self, order: Order) -> None:
        self._orders[order.job_number] = order

    def remove(self, job_number: str) -> None:
        self._orders.pop(job_number, None)

    async def list_orders(self, order_filter: OrderFilter | None = None) -> list[Order]:
        orders = list(self._orders.values())
        if order_filter is None:
            return orders
        return [order for order in orders if _matches(order, order_filter)]

    async def get_order(self, job_number: str) -> Order | None:
        return self._orders.get(str(job_number).strip())


class JsonRecordStore(InMemoryRecordStore):
    """Record store reading a JSON snapshot of orders from disk.

    The file holds either a list of orders or an object with an ``orders``
    list. It is re-read whenever its modification time changes.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()
        self._mtime: float | None = None
        super().__init__()

    async def list_orders(self, order_filter: OrderFilter | None = None) -> list[Order]:
        self._refresh()
        return await super().list_orders(order_filter)

    async def get_order(self, job_number: str) -> Order | None:
        self._refresh()
        return await super().get_order(job_number)

    def _refresh(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(f"Order snapshot not found: {self.path}")
        mtime = self.path.stat().st_mtime
        if mtime == self._mtime:
            return
        raw = orjson.loads(self.path.read_bytes())
        items = raw.get("orders", []) if isinstance(raw, dict) else raw
        self.replace(Order.model_validate(item) for item in items)
        self._mtime = mtime
        logger.info(
            "Loaded order snapshot",
            extra={"ctx_path": str(self.path), "ctx_orders": len(self._orders)},
        )


def _matches(order: Order, order_filter: OrderFilter) -> bool:
    if order_filter.status:
        if order_filter.status.lower() not in order.status.master.lower():
            return False
    if order_filter.due_date_range is not None:
        if not order_filter.due_date_range.contains(order.dates.due):
            return False
    if order_filter.text_filter:
        needle = order_filter.text_filter.lower()
        haystack = " ".join(
            [order.description, order.comments, order.customer.name, *order.tag_texts]
        ).lower()
        if needle not in haystack:
            return False
    return True


__all__ = ["InMemoryRecordStore", "JsonRecordStore"]
