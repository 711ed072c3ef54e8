"""Tag normalization and fuzzy tag matching."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_tag(tag: str) -> str:
    """Lowercase, trim and collapse inner whitespace."""
    return _WHITESPACE_RE.sub(" ", tag.strip().lower())


@lru_cache(maxsize=4096)
def tag_variants(tag: str) -> frozenset[str]:
    """All spellings a tag is compared under.

    Covers the tag itself, its ``@``-toggled form, the form with every
    non-alphanumeric character removed, and the space-to-hyphen and
    space-removed forms. Variants without any alphanumeric character are
    dropped so ``@`` alone never matches everything by containment.
    """
    base = normalize_tag(tag)
    toggled = base[1:] if base.startswith("@") else f"@{base}"
    candidates = {
        base,
        toggled,
        _NON_ALNUM_RE.sub("", base),
        base.replace(" ", "-"),
        base.replace(" ", ""),
    }
    return frozenset(item for item in candidates if _NON_ALNUM_RE.sub("", item))


def tag_matches(requested: str, stored: str) -> bool:
    """True if any variant of ``requested`` matches any variant of ``stored``.

    Containment is checked in both directions, so the relation is symmetric.
    """
    wanted = tag_variants(requested)
    have = tag_variants(stored)
    if wanted & have:
        return True
    return any(a in b or b in a for a in wanted for b in have)


def matches_any(requested: Iterable[str], stored: Iterable[str]) -> bool:
    stored = list(stored)
    return any(tag_matches(req, tag) for req in requested for tag in stored)


def dedupe_tags(tags: Iterable[str]) -> list[str]:
    """Normalize tags and drop duplicates while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and _NON_ALNUM_RE.sub("", normalized):
            seen.setdefault(normalized, None)
    return list(seen)


__all__ = ["normalize_tag", "tag_variants", "tag_matches", "matches_any", "dedupe_tags"]
