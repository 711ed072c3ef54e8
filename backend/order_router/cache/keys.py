"""Cache key derivation."""

from __future__ import annotations

from order_router.models.types import Freshness
from order_router.utils.hashing import sha256_bytes
from order_router.utils.text import normalize_query


def cache_key(query: str, freshness: Freshness = Freshness.DEFAULT) -> str:
    """Key over the normalized query and the freshness axis only."""
    signature = f"{normalize_query(query)}|{Freshness(freshness).value}"
    return sha256_bytes(signature.encode("utf-8"))


__all__ = ["cache_key"]
