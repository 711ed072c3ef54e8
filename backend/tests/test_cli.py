"""CLI integration tests."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from order_router.cli.main import app

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    orders = [
        {
            "job_number": 51001,
            "customer": {"name": "Acme Outfitters"},
            "description": "Laser engraved aluminum water bottles",
            "status": {"master": "Approved", "stock": "In Stock"},
            "dates": {"due": "2026-10-15"},
            "total": 1200,
            "tags": ["@laser"],
        },
        {
            "job_number": 51002,
            "customer": {"name": "Blue Ridge Brewing"},
            "description": "Embroidered work jackets",
            "dates": {"due": "2026-10-16"},
            "tags": ["rush"],
        },
    ]
    (tmp_path / "orders.json").write_text(json.dumps({"orders": orders}))
    monkeypatch.setenv("ORQ_ORDERS_PATH", str(tmp_path / "orders.json"))
    monkeypatch.setenv("ORQ_CACHE_PATH", str(tmp_path / "cache.json"))
    monkeypatch.setenv("ORQ_SYNC_BATCH_DELAY", "0")
    root = logging.getLogger()
    handlers = root.handlers[:]
    yield tmp_path
    root.handlers = handlers


def test_sync_then_query(workspace: Path) -> None:
    synced = runner.invoke(app, ["sync"])
    assert synced.exit_code == 0, synced.output
    assert '"new_vectors": 2' in synced.output

    again = runner.invoke(app, ["sync"])
    assert '"unchanged_vectors": 2' in again.output

    first = runner.invoke(app, ["query", "status of job 51002"])
    assert first.exit_code == 0, first.output
    assert '"job_number": "51002"' in first.output
    assert '"strategy": "direct"' in first.output

    second = runner.invoke(app, ["query", "status of job 51002"])
    assert '"data_freshness": "cached"' in second.output


def test_cache_commands(workspace: Path) -> None:
    runner.invoke(app, ["query", "status of job 51001"])
    stats = runner.invoke(app, ["cache-stats"])
    assert stats.exit_code == 0
    assert '"entries": 1' in stats.output

    cleared = runner.invoke(app, ["cache-clear", "--tag", "query-result"])
    assert '"removed": 1' in cleared.output


def test_invalid_sort_key_is_rejected(workspace: Path) -> None:
    result = runner.invoke(app, ["query", "anything", "--sort-by", "customer"])
    assert result.exit_code != 0


def test_metrics_command(workspace: Path) -> None:
    result = runner.invoke(app, ["metrics"])
    assert result.exit_code == 0
    assert "orq_routes_total" in result.output
