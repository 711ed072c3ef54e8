"""Order fingerprints and the stores that persist them."""

from __future__ import annotations

from typing import Iterable, Protocol

from order_router.db.sqlite import SQLiteDatabase
from order_router.models.orders import Order
from order_router.models.types import OrderFingerprint
from order_router.utils.hashing import stable_hash


def content_hash(order: Order) -> str:
    """Hash of the fields that warrant re-embedding when they change.

    Tags are compared as a set, so reordering or duplicating them upstream
    does not change the hash.
    """
    payload = {
        "status": order.status.master,
        "stock_status": order.status.stock,
        "description": order.description,
        "date_due": order.dates.due.isoformat() if order.dates.due else None,
        "tags": sorted({tag.strip() for tag in order.tag_texts}),
    }
    return stable_hash(payload)


class FingerprintStore(Protocol):
    def load_all(self) -> dict[str, OrderFingerprint]:
        ...

    def upsert_many(self, fingerprints: Iterable[OrderFingerprint]) -> None:
        ...

    def remove_many(self, order_ids: Iterable[str]) -> None:
        ...

    def reset(self) -> None:
        ...


class InMemoryFingerprintStore:
    def __init__(self) -> None:
        self._items: dict[str, OrderFingerprint] = {}

    def load_all(self) -> dict[str, OrderFingerprint]:
        return dict(self._items)

    def upsert_many(self, fingerprints: Iterable[OrderFingerprint]) -> None:
        for fingerprint in fingerprints:
            self._items[fingerprint.order_id] = fingerprint

    def remove_many(self, order_ids: Iterable[str]) -> None:
        for order_id in order_ids:
            self._items.pop(order_id, None)

    def reset(self) -> None:
        self._items.clear()


class SQLiteFingerprintStore:
    """Fingerprints kept in the ``fingerprints`` table."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self.db.ensure_schema()

    def load_all(self) -> dict[str, OrderFingerprint]:
        rows = self.db.query("SELECT order_id, content_hash, last_seen_at FROM fingerprints")
        return {
            row["order_id"]: OrderFingerprint(
                order_id=row["order_id"],
                content_hash=row["content_hash"],
                last_seen_at=row["last_seen_at"],
            )
            for row in rows
        }

    def upsert_many(self, fingerprints: Iterable[OrderFingerprint]) -> None:
        rows = [(fp.order_id, fp.content_hash, fp.last_seen_at) for fp in fingerprints]
        if not rows:
            return
        with self.db.transaction() as cur:
            cur.executemany(
                "INSERT INTO fingerprints(order_id, content_hash, last_seen_at) VALUES(?, ?, ?) "
                "ON CONFLICT(order_id) DO UPDATE SET content_hash = excluded.content_hash, "
                "last_seen_at = excluded.last_seen_at",
                rows,
            )

    def remove_many(self, order_ids: Iterable[str]) -> None:
        rows = [(order_id,) for order_id in order_ids]
        if not rows:
            return
        with self.db.transaction() as cur:
            cur.executemany("DELETE FROM fingerprints WHERE order_id = ?", rows)

    def reset(self) -> None:
        with self.db.transaction() as cur:
            cur.execute("DELETE FROM fingerprints")


__all__ = [
    "content_hash",
    "FingerprintStore",
    "InMemoryFingerprintStore",
    "SQLiteFingerprintStore",
]
