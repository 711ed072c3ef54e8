"""Assembly of the routing engine from settings."""

from __future__ import annotations

from dataclasses import dataclass

from order_router.cache.store import ResultCache
from order_router.clients.base import EmbeddingClient, RecordStoreClient, VectorIndexClient
from order_router.clients.embeddings import HashedEmbeddingClient
from order_router.clients.record_store import JsonRecordStore
from order_router.clients.vector_index import LocalVectorIndex
from order_router.core.config import Settings
from order_router.db.sqlite import SQLiteDatabase
from order_router.models.types import QueryContext, RoutedQueryResult, SyncResult
from order_router.routing.extractors import EntityExtractor, RuleBasedExtractor
from order_router.routing.intent import IntentClassifier
from order_router.routing.router import StrategyRouter
from order_router.sync.fingerprints import FingerprintStore, SQLiteFingerprintStore
from order_router.sync.synchronizer import SyncMode, VectorSynchronizer
from order_router.utils.time import resolve_timezone


@dataclass(slots=True)
class Engine:
    settings: Settings
    store: RecordStoreClient
    embedder: EmbeddingClient
    index: VectorIndexClient
    cache: ResultCache
    fingerprints: FingerprintStore
    router: StrategyRouter
    synchronizer: VectorSynchronizer
    db: SQLiteDatabase | None = None

    async def route(self, query: str, context: QueryContext | None = None) -> RoutedQueryResult:
        return await self.router.route(query, context)

    async def sync(self, mode: SyncMode = "incremental") -> SyncResult:
        return await self.synchronizer.run(mode)

    def close(self) -> None:
        if self.db is not None:
            self.db.commit()
            self.db.close()


def build_engine(
    settings: Settings,
    store: RecordStoreClient | None = None,
    embedder: EmbeddingClient | None = None,
    index: VectorIndexClient | None = None,
    cache: ResultCache | None = None,
    fingerprints: FingerprintStore | None = None,
    extractor: EntityExtractor | None = None,
) -> Engine:
    """Wire collaborators and services; anything passed in replaces the local default."""
    db: SQLiteDatabase | None = None
    if index is None or fingerprints is None:
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        if index is None:
            index = LocalVectorIndex(settings.embedding_dim, db=db)
        if fingerprints is None:
            fingerprints = SQLiteFingerprintStore(db)
    if store is None:
        store = JsonRecordStore(settings.orders_path)
    if embedder is None:
        embedder = HashedEmbeddingClient(settings.embedding_model, settings.embedding_dim)
    if cache is None:
        cache = ResultCache(max_entries=settings.cache_max_entries, default_ttl=settings.cache_ttl_default)
    classifier = IntentClassifier(
        extractor=extractor or RuleBasedExtractor(known_customers=settings.known_customers),
        tz=resolve_timezone(settings.timezone),
        extractor_timeout=settings.extractor_timeout,
    )
    router = StrategyRouter(settings, store, embedder, index, cache, classifier=classifier)
    synchronizer = VectorSynchronizer(settings, store, embedder, index, fingerprints, cache=cache)
    return Engine(
        settings=settings,
        store=store,
        embedder=embedder,
        index=index,
        cache=cache,
        fingerprints=fingerprints,
        router=router,
        synchronizer=synchronizer,
        db=db,
    )


__all__ = ["Engine", "build_engine"]
