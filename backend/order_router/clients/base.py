"""Protocols for the external collaborators the engine talks to."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from order_router.models.orders import Order
from order_router.models.types import OrderFilter, ScoredMatch, VectorRecord


@runtime_checkable
class RecordStoreClient(Protocol):
    """Source of truth for orders (the ERP)."""

    async def list_orders(self, order_filter: OrderFilter | None = None) -> list[Order]:
        ...

    async def get_order(self, job_number: str) -> Order | None:
        ...


@runtime_checkable
class EmbeddingClient(Protocol):
    """Turns text into fixed-dimension vectors."""

    @property
    def dim(self) -> int:
        ...

    async def embed(self, text: str) -> list[float]:
        ...


@runtime_checkable
class VectorIndexClient(Protocol):
    """Stores order vectors and answers similarity queries."""

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        ...

    async def delete(self, ids: Sequence[str]) -> None:
        ...

    async def query(self, vector: Sequence[float], top_k: int) -> list[ScoredMatch]:
        ...

    async def list_ids(self) -> list[str]:
        ...


__all__ = ["RecordStoreClient", "EmbeddingClient", "VectorIndexClient"]
