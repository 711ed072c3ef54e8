"""Test fixtures for the order router."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from order_router.cache.store import ResultCache  # noqa: E402
from order_router.clients.embeddings import HashedEmbeddingClient  # noqa: E402
from order_router.clients.record_store import InMemoryRecordStore  # noqa: E402
from order_router.clients.vector_index import LocalVectorIndex  # noqa: E402
from order_router.core.config import Settings, get_settings  # noqa: E402
from order_router.models.orders import Order  # noqa: E402
from order_router.models.types import OrderFilter, ScoredMatch, VectorRecord  # noqa: E402
from order_router.utils.time import resolve_timezone  # noqa: E402

TZ = resolve_timezone("America/Los_Angeles")
# Wednesday
WEDNESDAY = datetime(2026, 10, 14, 10, 30, tzinfo=TZ)


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep environment overrides and cached settings from leaking between tests."""
    monkeypatch.setenv("ORQ_DB_PATH", str(tmp_path / "router.db"))
    monkeypatch.delenv("ORQ_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "router.db",
        orders_path=tmp_path / "orders.json",
        embedding_dim=256,
        store_timeout=0.2,
        embed_timeout=0.2,
        vector_timeout=0.2,
        route_deadline=5.0,
        sync_batch_size=2,
        sync_batch_delay=0.0,
    )


def make_order(job_number: str | int, **overrides: Any) -> Order:
    payload: dict[str, Any] = {
        "job_number": job_number,
        "customer": {"id": 1, "name": "Acme Outfitters"},
        "description": "Branded apparel",
        "status": {"master": "Approved", "stock": "In Stock"},
        "dates": {"entered": "2026-10-01", "due": "2026-10-20"},
        "total": 100.0,
        "tags": [],
    }
    payload.update(overrides)
    return Order.model_validate(payload)


@pytest.fixture
def sample_orders() -> list[Order]:
    return [
        make_order(
            51001,
            description="Laser engraved aluminum water bottles",
            tags=["@laser", "production"],
            dates={"due": "2026-10-15"},
            total=1200.0,
        ),
        make_order(
            51002,
            customer={"id": 2, "name": "Blue Ridge Brewing"},
            description="Embroidered work jackets",
            tags=["rush", "embroidery"],
            dates={"due": "2026-10-16"},
            total=3400.0,
            time_sensitive=True,
        ),
        make_order(
            51003,
            customer={"id": 3, "name": "Coastal Credit Union"},
            description="Screen printed tote bags",
            status={"master": "Complete", "stock": "Shipped"},
            tags=["screen print"],
            dates={"due": "2026-10-08"},
            total=640.0,
        ),
        make_order(
            51004,
            description="Laser etched metal keychains",
            tags=["@laser", "rush"],
            dates={"due": "2026-10-28"},
            total=280.0,
        ),
    ]


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store that can be told to fail or hang."""

    def __init__(self, orders: Sequence[Order] = ()) -> None:
        super().__init__(orders)
        self.mode = "ok"
        self.calls: list[str] = []
        self.failing_jobs: set[str] = set()

    async def _maybe_fail(self) -> None:
        if self.mode == "fail":
            raise ConnectionError("record store down")
        if self.mode == "hang":
            await asyncio.sleep(10)

    async def list_orders(self, order_filter: OrderFilter | None = None) -> list[Order]:
        self.calls.append("list_orders")
        await self._maybe_fail()
        return await super().list_orders(order_filter)

    async def get_order(self, job_number: str) -> Order | None:
        self.calls.append(f"get_order:{job_number}")
        await self._maybe_fail()
        if job_number in self.failing_jobs:
            raise ConnectionError(f"cannot fetch {job_number}")
        return await super().get_order(job_number)


class CountingEmbedder(HashedEmbeddingClient):
    def __init__(self, dim: int = 256) -> None:
        super().__init__(dim=dim)
        self.texts: list[str] = []
        self.mode = "ok"

    async def embed(self, text: str) -> list[float]:
        self.texts.append(text)
        if self.mode == "fail":
            raise ConnectionError("embedding service down")
        if self.mode == "hang":
            await asyncio.sleep(10)
        return await super().embed(text)


class FlakyVectorIndex(LocalVectorIndex):
    def __init__(self, dim: int = 256) -> None:
        super().__init__(dim)
        self.mode = "ok"
        self.fail_upsert_for: set[str] = set()
        self.queries: list[int] = []

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if any(record.id in self.fail_upsert_for for record in records):
            raise ConnectionError("upsert rejected")
        await super().upsert(records)

    async def query(self, vector: Sequence[float], top_k: int) -> list[ScoredMatch]:
        self.queries.append(top_k)
        if self.mode == "fail":
            raise ConnectionError("vector index down")
        if self.mode == "hang":
            await asyncio.sleep(10)
        return await super().query(vector, top_k)


class StaticVectorIndex:
    """Index that answers every query with a fixed list of matches."""

    def __init__(self, matches: Sequence[ScoredMatch]) -> None:
        self.matches = list(matches)
        self.queries: list[int] = []

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        return None

    async def delete(self, ids: Sequence[str]) -> None:
        return None

    async def query(self, vector: Sequence[float], top_k: int) -> list[ScoredMatch]:
        self.queries.append(top_k)
        return sorted(self.matches, key=lambda match: match.score, reverse=True)[:top_k]

    async def list_ids(self) -> list[str]:
        return [match.id for match in self.matches]


class ManualClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> ResultCache:
    return ResultCache(max_entries=50, clock=clock)


@pytest.fixture
def store(sample_orders: list[Order]) -> FlakyRecordStore:
    return FlakyRecordStore(sample_orders)


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder(dim=256)


@pytest.fixture
def index() -> FlakyVectorIndex:
    return FlakyVectorIndex(dim=256)
