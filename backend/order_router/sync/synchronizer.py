"""Incremental and full synchronization of the vector index."""

from __future__ import annotations

import asyncio
import time
from typing import Iterator, Literal, Sequence, TypeVar

from order_router.cache.store import QUERY_RESULT_TAG, ResultCache
from order_router.clients.base import EmbeddingClient, RecordStoreClient, VectorIndexClient
from order_router.clients.guard import guarded
from order_router.core.config import Settings
from order_router.core.logging import get_logger
from order_router.core.metrics import SYNC_DURATION, SYNC_ERRORS, SYNC_VECTORS
from order_router.models.orders import Order
from order_router.models.projection import order_metadata, search_text, vector_id
from order_router.models.types import ChangeSet, SyncError, SyncResult, VectorRecord
from order_router.sync.fingerprints import FingerprintStore
from order_router.sync.tracker import ChangeTracker
from order_router.utils.ids import new_id

logger = get_logger(__name__)

SyncMode = Literal["incremental", "full"]
T = TypeVar("T")


class VectorSynchronizer:
    """Keep the vector index consistent with the record store.

    Only new and updated orders are embedded. Work is split into batches
    with a pause between them; a failed batch is reported in
    ``SyncResult.errors`` and its fingerprints are left untouched so the
    next run picks it up again.
    """

    def __init__(
        self,
        settings: Settings,
        store: RecordStoreClient,
        embedder: EmbeddingClient,
        index: VectorIndexClient,
        fingerprints: FingerprintStore,
        cache: ResultCache | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self.index = index
        self.fingerprints = fingerprints
        self.tracker = ChangeTracker(fingerprints)
        self.cache = cache

    async def run(self, mode: SyncMode = "incremental") -> SyncResult:
        """Fetch the full listing, diff it and apply the change set."""
        if mode not in ("incremental", "full"):
            raise ValueError(f"Unknown sync mode: {mode}")
        run_id = new_id("sync")
        started = time.perf_counter()
        logger.info("Starting %s sync", mode, extra={"ctx_run_id": run_id})

        orders = await guarded("record_store", self.store.list_orders(), self.settings.store_timeout)
        if mode == "full":
            self.fingerprints.reset()
        change_set = self.tracker.diff(orders, full_listing=True)
        result = await self.sync(change_set, mode=mode, run_id=run_id)

        if mode == "full":
            result.orphans_deleted = await self._delete_orphans(orders, result)

        if self.cache is not None and (mode == "full" or result.changed > 0):
            result.cache_entries_invalidated = self.cache.invalidate_by_tag(QUERY_RESULT_TAG)

        result.duration = time.perf_counter() - started
        SYNC_DURATION.labels(mode=mode).observe(result.duration)
        logger.info(
            "Finished %s sync",
            mode,
            extra={
                "ctx_run_id": run_id,
                "ctx_new": result.new_vectors,
                "ctx_updated": result.updated_vectors,
                "ctx_deleted": result.deleted_vectors,
                "ctx_unchanged": result.unchanged_vectors,
                "ctx_orphans": result.orphans_deleted,
                "ctx_errors": len(result.errors),
                "ctx_duration": round(result.duration, 3),
            },
        )
        return result

    async def sync(
        self,
        change_set: ChangeSet,
        mode: SyncMode = "incremental",
        run_id: str | None = None,
    ) -> SyncResult:
        """Apply ``change_set`` to the index and the fingerprint store."""
        result = SyncResult(run_id=run_id or new_id("sync"), mode=mode)
        result.unchanged_vectors = len(change_set.unchanged_orders)
        self.fingerprints.upsert_many(ChangeTracker.fingerprints_for(change_set.unchanged_orders))

        new_ids = {order.job_number for order in change_set.new_orders}
        for number, batch in enumerate(_batches(change_set.to_embed, self.settings.sync_batch_size), start=1):
            if number > 1:
                await asyncio.sleep(self.settings.sync_batch_delay)
            try:
                records = [await self._vector_record(order) for order in batch]
                await guarded("vector_index", self.index.upsert(records), self.settings.vector_timeout)
            except Exception as exc:
                self._record_error(result, "upsert", number, [order.job_number for order in batch], exc)
                continue
            self.fingerprints.upsert_many(ChangeTracker.fingerprints_for(batch))
            created = sum(1 for order in batch if order.job_number in new_ids)
            result.new_vectors += created
            result.updated_vectors += len(batch) - created
            SYNC_VECTORS.labels(operation="new").inc(created)
            SYNC_VECTORS.labels(operation="updated").inc(len(batch) - created)

        if change_set.full_listing:
            deletions = _batches(change_set.deleted_order_ids, self.settings.sync_batch_size)
            for number, batch in enumerate(deletions, start=1):
                if number > 1:
                    await asyncio.sleep(self.settings.sync_batch_delay)
                try:
                    await guarded(
                        "vector_index",
                        self.index.delete([vector_id(order_id) for order_id in batch]),
                        self.settings.vector_timeout,
                    )
                except Exception as exc:
                    self._record_error(result, "delete", number, list(batch), exc)
                    continue
                self.fingerprints.remove_many(batch)
                result.deleted_vectors += len(batch)
                SYNC_VECTORS.labels(operation="deleted").inc(len(batch))

        SYNC_VECTORS.labels(operation="unchanged").inc(result.unchanged_vectors)
        return result

    async def run_periodically(
        self,
        interval: float | None = None,
        mode: SyncMode = "incremental",
        stop: asyncio.Event | None = None,
    ) -> None:
        """Run :meth:`run` every ``interval`` seconds until ``stop`` is set."""
        interval = interval or self.settings.sync_interval
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await self.run(mode)
            except Exception as exc:
                logger.exception("Scheduled %s sync failed: %s", mode, exc)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def _vector_record(self, order: Order) -> VectorRecord:
        embedding = await guarded(
            "embedding", self.embedder.embed(search_text(order)), self.settings.embed_timeout
        )
        return VectorRecord(id=vector_id(order.job_number), embedding=list(embedding), metadata=order_metadata(order))

    async def _delete_orphans(self, orders: Sequence[Order], result: SyncResult) -> int:
        live = {vector_id(order.job_number) for order in orders}
        try:
            stored = await guarded("vector_index", self.index.list_ids(), self.settings.vector_timeout)
        except Exception as exc:
            self._record_error(result, "orphans", 0, [], exc)
            return 0
        orphans = [identifier for identifier in stored if identifier not in live]
        deleted = 0
        for number, batch in enumerate(_batches(orphans, self.settings.sync_batch_size), start=1):
            try:
                await guarded("vector_index", self.index.delete(list(batch)), self.settings.vector_timeout)
            except Exception as exc:
                self._record_error(result, "orphans", number, list(batch), exc)
                continue
            deleted += len(batch)
        if deleted:
            SYNC_VECTORS.labels(operation="orphaned").inc(deleted)
        return deleted

    @staticmethod
    def _record_error(result: SyncResult, stage: str, batch: int, order_ids: list[str], exc: Exception) -> None:
        logger.warning(
            "Sync batch %s failed during %s: %s",
            batch,
            stage,
            exc,
            extra={"ctx_run_id": result.run_id, "ctx_orders": len(order_ids)},
        )
        result.errors.append(SyncError(stage=stage, batch=batch, order_ids=order_ids, message=str(exc)))
        SYNC_ERRORS.labels(stage=stage).inc()


def _batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


__all__ = ["VectorSynchronizer", "SyncMode"]
