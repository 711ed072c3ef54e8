"""Tests for the result cache."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import ManualClock
from order_router.cache.keys import cache_key
from order_router.cache.store import QUERY_RESULT_TAG, ResultCache
from order_router.models.types import Freshness


def test_keys_normalize_queries_and_split_on_freshness() -> None:
    assert cache_key("Orders due today?") == cache_key("  orders   due TODAY")
    assert cache_key("orders due today") != cache_key("orders due today", Freshness.FRESH)
    assert len(cache_key("anything")) == 64


def test_set_and_get(cache: ResultCache) -> None:
    cache.set("k", {"orders": [1, 2]}, ttl=60)
    assert cache.get("k") == {"orders": [1, 2]}
    assert "k" in cache
    assert cache.get("missing") is None
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5


def test_entries_expire_after_ttl(cache: ResultCache, clock: ManualClock) -> None:
    cache.set("k", "v", ttl=10)
    clock.advance(10)
    assert cache.get("k") == "v"
    clock.advance(0.001)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_non_positive_ttl_is_rejected(cache: ResultCache) -> None:
    with pytest.raises(ValueError):
        cache.set("k", "v", ttl=0)


def test_invalidate_by_tag_and_pattern(cache: ResultCache) -> None:
    cache.set("a", 1, tags=[QUERY_RESULT_TAG, "vector"])
    cache.set("b", 2, tags=[QUERY_RESULT_TAG, "direct"])
    cache.set("stats:1", 3, tags=["stats"])
    assert cache.invalidate_by_tag("vector") == 1
    assert cache.stats()["tags"] == {QUERY_RESULT_TAG: 1, "direct": 1, "stats": 1}
    assert cache.invalidate_by_pattern("stats:*") == 1
    assert cache.invalidate_by_tag(QUERY_RESULT_TAG) == 1
    assert len(cache) == 0


def test_lru_eviction(clock: ManualClock) -> None:
    cache = ResultCache(max_entries=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)
    assert "a" in cache
    assert "b" not in cache
    assert cache.stats()["evictions"] == 1


def test_invalidate_stale_and_clear(cache: ResultCache, clock: ManualClock) -> None:
    cache.set("short", 1, ttl=5)
    cache.set("long", 2, ttl=500)
    clock.advance(6)
    assert cache.invalidate_stale() == 1
    assert cache.clear() == 1


def test_flush_and_load_skip_expired(tmp_path: Path, clock: ManualClock) -> None:
    path = tmp_path / "cache.json"
    cache = ResultCache(clock=clock)
    cache.set("short", 1, ttl=5, tags=["x"])
    cache.set("long", {"nested": True}, ttl=500, tags=["y"])
    assert cache.flush(path) == 2

    clock.advance(10)
    restored = ResultCache(clock=clock)
    assert restored.load(path) == 1
    assert restored.get("long") == {"nested": True}
    assert restored.entries()[0].tags == ["y"]
    assert ResultCache(clock=clock).load(tmp_path / "absent.json") == 0


@pytest.mark.asyncio
async def test_sweeper_removes_expired_entries(cache: ResultCache, clock: ManualClock) -> None:
    cache.set("k", "v", ttl=1)
    clock.advance(2)
    stop = asyncio.Event()
    sweeper = asyncio.create_task(cache.sweep_forever(0.01, stop))
    await asyncio.sleep(0.05)
    stop.set()
    await sweeper
    assert len(cache) == 0
