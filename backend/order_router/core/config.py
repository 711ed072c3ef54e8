"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "ORQ_"
DEFAULT_CONFIG_PATH = Path("~/.config/order-router/config.yaml")

SortKey = Literal["score", "due_date", "priority"]

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "orders_path"): "orders_path",
    ("storage", "cache_path"): "cache_path",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("retrieval", "thresholds"): "relaxation_thresholds",
    ("retrieval", "top_k", "narrow"): "top_k_narrow",
    ("retrieval", "top_k", "standard"): "top_k_standard",
    ("retrieval", "top_k", "medium"): "top_k_medium",
    ("retrieval", "top_k", "broad"): "top_k_broad",
    ("retrieval", "max_top_k"): "max_top_k",
    ("retrieval", "hybrid_recall_multiplier"): "hybrid_recall_multiplier",
    ("retrieval", "max_enrichment"): "max_enrichment",
    ("retrieval", "enrichment_concurrency"): "enrichment_concurrency",
    ("retrieval", "sort_by"): "sort_by",
    ("retrieval", "single_flight"): "single_flight",
    ("retrieval", "known_customers"): "known_customers",
    ("timeouts", "store"): "store_timeout",
    ("timeouts", "embedding"): "embed_timeout",
    ("timeouts", "vector"): "vector_timeout",
    ("timeouts", "route_deadline"): "route_deadline",
    ("timeouts", "extractor"): "extractor_timeout",
    ("cache", "ttl_fresh"): "cache_ttl_fresh",
    ("cache", "ttl_default"): "cache_ttl_default",
    ("cache", "ttl_semantic"): "cache_ttl_semantic",
    ("cache", "max_entries"): "cache_max_entries",
    ("cache", "sweep_interval"): "cache_sweep_interval",
    ("sync", "batch_size"): "sync_batch_size",
    ("sync", "batch_delay"): "sync_batch_delay",
    ("sync", "interval"): "sync_interval",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".order-router" / "router.db")
    orders_path: Path = Field(default=Path.home() / ".order-router" / "orders.json")
    cache_path: Path | None = None
    timezone: str = "America/Los_Angeles"

    embedding_model: str = "hashed-bow"
    embedding_dim: int = Field(default=384, ge=8)

    relaxation_thresholds: list[float] = Field(default_factory=lambda: [0.8, 0.6, 0.4, 0.2])
    top_k_narrow: int = Field(default=5, ge=1)
    top_k_standard: int = Field(default=15, ge=1)
    top_k_medium: int = Field(default=25, ge=1)
    top_k_broad: int = Field(default=50, ge=1)
    max_top_k: int = Field(default=100, ge=1)
    hybrid_recall_multiplier: float = Field(default=2.0, ge=1.0)
    max_enrichment: int = Field(default=10, ge=0)
    enrichment_concurrency: int = Field(default=4, ge=1)
    sort_by: SortKey = "score"
    single_flight: bool = False
    known_customers: list[str] = Field(default_factory=list)

    store_timeout: float = Field(default=10.0, gt=0)
    embed_timeout: float = Field(default=15.0, gt=0)
    vector_timeout: float = Field(default=10.0, gt=0)
    extractor_timeout: float = Field(default=8.0, gt=0)
    route_deadline: float = Field(default=30.0, gt=0)
    deadline_confidence_penalty: float = Field(default=0.5, ge=0.0, le=1.0)

    cache_ttl_fresh: float = Field(default=120.0, gt=0)
    cache_ttl_default: float = Field(default=300.0, gt=0)
    cache_ttl_semantic: float = Field(default=600.0, gt=0)
    cache_max_entries: int = Field(default=1000, ge=1)
    cache_sweep_interval: float = Field(default=900.0, gt=0)

    sync_batch_size: int = Field(default=25, ge=1)
    sync_batch_delay: float = Field(default=1.0, ge=0.0)
    sync_interval: float = Field(default=3600.0, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "orders_path", "cache_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @field_validator("relaxation_thresholds", "known_customers", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @field_validator("relaxation_thresholds")
    @classmethod
    def _check_thresholds(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("at least one relaxation threshold is required")
        if any(not 0.0 <= item <= 1.0 for item in value):
            raise ValueError("relaxation thresholds must lie in [0, 1]")
        if any(later >= earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("relaxation thresholds must be strictly descending")
        return value

    @model_validator(mode="after")
    def _check_top_k_tiers(self) -> "Settings":
        tiers = [self.top_k_narrow, self.top_k_standard, self.top_k_medium, self.top_k_broad]
        if any(later < earlier for earlier, later in zip(tiers, tiers[1:])):
            raise ValueError("top_k tiers must be non-decreasing from narrow to broad")
        if self.top_k_broad > self.max_top_k:
            raise ValueError("top_k_broad cannot exceed max_top_k")
        return self

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with ORQ_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor."""
    return Settings.from_yaml()


__all__ = ["Settings", "SortKey", "get_settings"]
