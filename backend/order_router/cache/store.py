"""Tagged TTL cache for routed query results."""

from __future__ import annotations

import asyncio
import fnmatch
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import orjson

from order_router.core.logging import get_logger
from order_router.core.metrics import CACHE_EVENTS

logger = get_logger(__name__)

QUERY_RESULT_TAG = "query-result"


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    ttl: float
    tags: list[str] = field(default_factory=list)
    hits: int = 0
    last_accessed: float = 0.0

    def expired(self, now: float) -> bool:
        return self.created_at + self.ttl < now

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "created_at": self.created_at,
            "ttl": self.ttl,
            "tags": self.tags,
            "hits": self.hits,
            "last_accessed": self.last_accessed,
        }


class ResultCache:
    """In-memory LRU cache whose entries expire by TTL or by tag."""

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: float = 1200.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.expired(self._clock())

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            self._record_miss()
            return None
        now = self._clock()
        if entry.expired(now):
            del self._entries[key]
            self._evictions += 1
            CACHE_EVENTS.labels(event="expired").inc()
            self._record_miss()
            return None
        entry.hits += 1
        entry.last_accessed = now
        self._entries.move_to_end(key)
        self._hits += 1
        CACHE_EVENTS.labels(event="hit").inc()
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None, tags: Iterable[str] = ()) -> CacheEntry:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        now = self._clock()
        entry = CacheEntry(
            key=key, value=value, created_at=now, ttl=ttl, tags=list(dict.fromkeys(tags)), last_accessed=now
        )
        self._entries[key] = entry
        self._entries.move_to_end(key)
        CACHE_EVENTS.labels(event="set").inc()
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            CACHE_EVENTS.labels(event="evicted").inc()
            logger.debug("Evicted least recently used cache entry %s", evicted)
        return entry

    def invalidate_by_tag(self, tag: str) -> int:
        doomed = [key for key, entry in self._entries.items() if tag in entry.tags]
        for key in doomed:
            del self._entries[key]
        if doomed:
            CACHE_EVENTS.labels(event="invalidated").inc(len(doomed))
            logger.info("Invalidated %s cache entries tagged %s", len(doomed), tag)
        return len(doomed)

    def invalidate_by_pattern(self, pattern: str) -> int:
        doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            CACHE_EVENTS.labels(event="invalidated").inc(len(doomed))
        return len(doomed)

    def invalidate_stale(self) -> int:
        now = self._clock()
        doomed = [key for key, entry in self._entries.items() if entry.expired(now)]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self._evictions += len(doomed)
            CACHE_EVENTS.labels(event="expired").inc(len(doomed))
        return len(doomed)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        tags: dict[str, int] = {}
        for entry in self._entries.values():
            for tag in entry.tags:
                tags[tag] = tags.get(tag, 0) + 1
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            "tags": tags,
        }

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def reset(self) -> None:
        self.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    async def sweep_forever(self, interval: float, stop: asyncio.Event | None = None) -> None:
        """Evict expired entries every ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                removed = self.invalidate_stale()
                if removed:
                    logger.debug("Cache sweep removed %s expired entries", removed)

    def flush(self, path: Path) -> int:
        """Write live entries to ``path`` as JSON; returns the number written."""
        now = self._clock()
        live = [entry.to_dict() for entry in self._entries.values() if not entry.expired(now)]
        path = path.expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(orjson.dumps({"entries": live}, default=str))
        return len(live)

    def load(self, path: Path) -> int:
        """Restore entries from ``path``; expired ones are skipped."""
        path = path.expanduser()
        if not path.exists():
            return 0
        raw = orjson.loads(path.read_bytes())
        now = self._clock()
        loaded = 0
        for item in raw.get("entries", []):
            entry = CacheEntry(
                key=item["key"],
                value=item["value"],
                created_at=float(item["created_at"]),
                ttl=float(item["ttl"]),
                tags=list(item.get("tags", [])),
                hits=int(item.get("hits", 0)),
                last_accessed=float(item.get("last_accessed", item["created_at"])),
            )
            if entry.expired(now):
                continue
            self._entries[entry.key] = entry
            loaded += 1
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return loaded

    def _record_miss(self) -> None:
        self._misses += 1
        CACHE_EVENTS.labels(event="miss").inc()


__all__ = ["CacheEntry", "ResultCache", "QUERY_RESULT_TAG"]
