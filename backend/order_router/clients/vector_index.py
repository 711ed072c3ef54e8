"""Vector index abstraction."""

from __future__ import annotations

from typing import Sequence

import orjson

from order_router.clients.embeddings import as_bytes, from_bytes
from order_router.core.logging import get_logger
from order_router.core.metrics import INDEX_SIZE
from order_router.db.sqlite import SQLiteDatabase
from order_router.models.types import ScoredMatch, VectorRecord
from order_router.utils.time import now_ms

logger = get_logger(__name__)


class LocalVectorIndex:
    """In-memory cosine index, optionally written through to SQLite."""

    def __init__(self, dim: int, db: SQLiteDatabase | None = None) -> None:
        self.dim = dim
        self._db = db
        self._vectors: dict[str, list[float]] = {}
        self._metadata: dict[str, dict] = {}
        if db is not None:
            db.ensure_schema()
            self._load(db)

    @property
    def size(self) -> int:
        return len(self._vectors)

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        for record in records:
            if len(record.embedding) != self.dim:
                raise ValueError("Vector dimension mismatch")
        for record in records:
            self._vectors[record.id] = list(record.embedding)
            self._metadata[record.id] = dict(record.metadata)
        if self._db is not None:
            stamp = now_ms()
            with self._db.transaction() as cur:
                cur.executemany(
                    "INSERT INTO vectors(id, vector, metadata_json, updated_at) VALUES(?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET vector = excluded.vector, "
                    "metadata_json = excluded.metadata_json, updated_at = excluded.updated_at",
                    [
                        (
                            record.id,
                            as_bytes(record.embedding),
                            orjson.dumps(record.metadata, default=str).decode("utf-8"),
                            stamp,
                        )
                        for record in records
                    ],
                )
        INDEX_SIZE.set(self.size)

    async def delete(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        for identifier in ids:
            self._vectors.pop(identifier, None)
            self._metadata.pop(identifier, None)
        if self._db is not None:
            with self._db.transaction() as cur:
                cur.executemany("DELETE FROM vectors WHERE id = ?", [(identifier,) for identifier in ids])
        INDEX_SIZE.set(self.size)

    async def query(self, vector: Sequence[float], top_k: int) -> list[ScoredMatch]:
        if not self._vectors:
            return []
        if len(vector) != self.dim:
            raise ValueError("Query vector dimension mismatch")
        scores = [(identifier, _dot(stored, vector)) for identifier, stored in self._vectors.items()]
        scores.sort(key=lambda item: item[1], reverse=True)
        limit = min(top_k, len(scores))
        return [
            ScoredMatch(id=identifier, score=score, metadata=dict(self._metadata.get(identifier, {})))
            for identifier, score in scores[:limit]
        ]

    async def list_ids(self) -> list[str]:
        return sorted(self._vectors)

    def _load(self, db: SQLiteDatabase) -> None:
        rows = db.query("SELECT id, vector, metadata_json FROM vectors")
        for row in rows:
            vector = from_bytes(row["vector"])
            if len(vector) != self.dim:
                logger.warning(
                    "Skipping stored vector with wrong dimension",
                    extra={"ctx_vector_id": row["id"], "ctx_dim": len(vector)},
                )
                continue
            self._vectors[row["id"]] = vector
            self._metadata[row["id"]] = orjson.loads(row["metadata_json"])
        INDEX_SIZE.set(self.size)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


__all__ = ["LocalVectorIndex"]
