"""Change detection between an order listing and recorded fingerprints."""

from __future__ import annotations

from typing import Sequence

from order_router.core.logging import get_logger
from order_router.models.orders import Order
from order_router.models.types import ChangeSet, OrderFingerprint
from order_router.sync.fingerprints import FingerprintStore, content_hash
from order_router.utils.time import now_ms

logger = get_logger(__name__)


class ChangeTracker:
    """Classify a listing into new/updated/unchanged/deleted buckets."""

    def __init__(self, store: FingerprintStore) -> None:
        self.store = store

    def diff(self, orders: Sequence[Order], full_listing: bool = True) -> ChangeSet:
        """Compare ``orders`` against the fingerprint store without mutating it.

        Duplicate job numbers in the listing keep their last occurrence.
        Deletions are only reported for a full listing, since a partial
        listing says nothing about orders it does not contain.
        """
        known = self.store.load_all()
        current: dict[str, Order] = {}
        for order in orders:
            current[order.job_number] = order

        change_set = ChangeSet(full_listing=full_listing)
        for job_number, order in current.items():
            previous = known.get(job_number)
            if previous is None:
                change_set.new_orders.append(order)
            elif previous.content_hash != content_hash(order):
                change_set.updated_orders.append(order)
            else:
                change_set.unchanged_orders.append(order)

        if full_listing:
            change_set.deleted_order_ids = sorted(set(known) - set(current))

        logger.debug("Computed change set %s", change_set.counts())
        return change_set

    @staticmethod
    def fingerprints_for(orders: Sequence[Order], seen_at: int | None = None) -> list[OrderFingerprint]:
        stamp = seen_at if seen_at is not None else now_ms()
        return [
            OrderFingerprint(order_id=order.job_number, content_hash=content_hash(order), last_seen_at=stamp)
            for order in orders
        ]


__all__ = ["ChangeTracker"]
