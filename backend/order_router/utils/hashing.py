"""Hashing utilities."""

from __future__ import annotations

import hashlib
from typing import Any

import orjson


def sha256_bytes(data: bytes) -> str:
    """Return hex digest for bytes input."""
    return hashlib.sha256(data).hexdigest()


def stable_hash(payload: Any) -> str:
    """Return a digest of ``payload`` that ignores mapping key order."""
    return sha256_bytes(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS, default=str))
