"""Embedding utilities."""

from __future__ import annotations

import hashlib
import math
import re
from array import array

_TOKEN_RE = re.compile(r"[@\w]+")


class HashedEmbeddingClient:
    """Deterministic hashed bag-of-words embeddings with a fixed dimensionality."""

    def __init__(self, model_name: str = "hashed-bow", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
            # @-tags also count toward their bare word so "@laser" and "laser" overlap
            if token.startswith("@") and len(token) > 1:
                vector[_hash_token(token[1:], self._dim)] += 1.0
        _normalize(vector)
        return vector


def as_bytes(vector: list[float]) -> bytes:
    return array("f", vector).tobytes()


def from_bytes(payload: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(payload)
    return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = ["HashedEmbeddingClient", "as_bytes", "from_bytes"]
