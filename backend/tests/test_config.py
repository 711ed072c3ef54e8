"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from order_router.core.config import Settings, get_settings


def test_defaults_are_valid() -> None:
    settings = Settings()
    assert settings.relaxation_thresholds == [0.8, 0.6, 0.4, 0.2]
    assert settings.sort_by == "score"
    assert settings.single_flight is False


def test_yaml_sections_map_to_fields(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "timezone: Europe/Berlin\n"
        "storage:\n"
        f"  orders_path: {tmp_path / 'orders.json'}\n"
        "retrieval:\n"
        "  thresholds: [0.7, 0.5, 0.3]\n"
        "  top_k:\n"
        "    narrow: 3\n"
        "  known_customers: [Acme Outfitters]\n"
        "cache:\n"
        "  ttl_fresh: 60\n"
        "sync:\n"
        "  batch_size: 10\n"
    )
    settings = Settings.from_yaml(config)
    assert settings.timezone == "Europe/Berlin"
    assert settings.orders_path == tmp_path / "orders.json"
    assert settings.relaxation_thresholds == [0.7, 0.5, 0.3]
    assert settings.top_k_narrow == 3
    assert settings.known_customers == ["Acme Outfitters"]
    assert settings.cache_ttl_fresh == 60
    assert settings.sync_batch_size == 10


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("sync:\n  batch_size: 10\n")
    monkeypatch.setenv("ORQ_CONFIG", str(config))
    monkeypatch.setenv("ORQ_SYNC_BATCH_SIZE", "7")
    monkeypatch.setenv("ORQ_RELAXATION_THRESHOLDS", "0.9, 0.5")
    monkeypatch.setenv("ORQ_KNOWN_CUSTOMERS", "Acme Outfitters, Blue Ridge Brewing")

    settings = get_settings()
    assert settings.sync_batch_size == 7
    assert settings.relaxation_thresholds == [0.9, 0.5]
    assert settings.known_customers == ["Acme Outfitters", "Blue Ridge Brewing"]
    assert settings.db_path.name == "router.db"
    assert get_settings() is settings


@pytest.mark.parametrize(
    "overrides",
    [
        {"relaxation_thresholds": [0.4, 0.6]},
        {"relaxation_thresholds": []},
        {"relaxation_thresholds": [1.5, 0.5]},
        {"top_k_narrow": 30, "top_k_standard": 15},
        {"top_k_broad": 150},
        {"store_timeout": 0},
        {"sort_by": "customer"},
    ],
)
def test_invalid_settings_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)
