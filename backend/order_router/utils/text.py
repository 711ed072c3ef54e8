"""Text processing helpers."""

from __future__ import annotations

import re


WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_PUNCT_RE = re.compile(r"[\s?!.,;:]+$")


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def normalize_query(text: str) -> str:
    """Lowercase, collapse whitespace and drop trailing punctuation."""
    return _TRAILING_PUNCT_RE.sub("", normalize(text).lower())


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)].rstrip() + "..."
