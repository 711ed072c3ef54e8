"""Tests for the local record stores."""

from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path

import pytest

from conftest import TZ
from order_router.clients.record_store import InMemoryRecordStore, JsonRecordStore
from order_router.models.types import DateRange, OrderFilter
from order_router.utils.time import at_end, at_start


def _write(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload))


@pytest.mark.asyncio
async def test_listing_filters(sample_orders) -> None:
    store = InMemoryRecordStore(sample_orders)
    window = DateRange(start=at_start(date(2026, 10, 14), TZ), end=at_end(date(2026, 10, 16), TZ))

    due = await store.list_orders(OrderFilter(due_date_range=window))
    assert [order.job_number for order in due] == ["51001", "51002"]
    complete = await store.list_orders(OrderFilter(status="complete"))
    assert [order.job_number for order in complete] == ["51003"]
    brewing = await store.list_orders(OrderFilter(text_filter="brewing"))
    assert [order.job_number for order in brewing] == ["51002"]
    assert await store.get_order(" 51004 ") is not None
    assert await store.get_order("99999") is None


@pytest.mark.asyncio
async def test_json_store_reads_both_layouts(tmp_path: Path) -> None:
    path = tmp_path / "orders.json"
    _write(path, [{"job_number": 1, "tags": ["rush"]}])
    store = JsonRecordStore(path)
    [order] = await store.list_orders()
    assert order.job_number == "1"
    assert order.tag_texts == ["rush"]

    _write(path, {"orders": [{"job_number": "2"}, {"job_number": "3"}]})
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    assert [order.job_number for order in await store.list_orders()] == ["2", "3"]
    assert await store.get_order("1") is None


@pytest.mark.asyncio
async def test_missing_snapshot_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await JsonRecordStore(tmp_path / "absent.json").list_orders()
