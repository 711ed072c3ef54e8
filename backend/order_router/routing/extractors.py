"""Entity extraction from free-text order queries."""

from __future__ import annotations

import asyncio
import re
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Protocol, Sequence

import orjson
from pydantic import BaseModel, Field, ValidationError
from rapidfuzz import fuzz, process, utils

from order_router.core.logging import get_logger
from order_router.models.types import DateRange, IntentEntities
from order_router.routing.tags import dedupe_tags
from order_router.utils.time import at_end, at_start

logger = get_logger(__name__)

# canonical keyword -> spellings seen in queries
PROCESS_KEYWORDS: dict[str, tuple[str, ...]] = {
    "laser": ("laser", "laser cutting", "laser engraving", "engraving", "engraved"),
    "etching": ("etching", "etch", "etched"),
    "embroidery": ("embroidery", "embroidered", "stitching"),
    "screen print": ("screen print", "screen printing", "screenprint", "screen printed"),
    "digital print": ("digital print", "digital printing", "dtf"),
    "supacolor": ("supacolor", "supa color"),
    "hardware": ("hardware",),
    "jacket": ("jacket", "jackets"),
    "tshirt": ("tshirt", "t-shirt", "t-shirts", "tee", "tees"),
    "hat": ("hat", "hats", "cap", "caps", "beanie", "beanies"),
    "bag": ("bag", "bags", "tote", "totes", "backpack"),
    "sample": ("sample", "samples"),
}

_TAG_VALUE = r"(?:\"([^\"]+)\"|'([^']+)'|(@?[\w][\w\-]*))"
_EXCLUDE_RE = re.compile(
    r"\b(?:not\s+tagged(?:\s+with)?|excluding(?:\s+(?:the\s+)?tags?)?|without\s+(?:the\s+)?tags?)\s+"
    + _TAG_VALUE,
    re.IGNORECASE,
)
_INCLUDE_RE = re.compile(r"\b(?:tagged(?:\s+with)?|with\s+(?:the\s+)?tags?)\s+" + _TAG_VALUE, re.IGNORECASE)
_AT_TAG_RE = re.compile(r"(?<![\w@])(@[\w][\w\-]*)")
_IN_PRODUCTION_RE = re.compile(r"\bin\s+production\b", re.IGNORECASE)

_JOB_PREFIXED_RE = re.compile(r"\b(?:job|order|jo)\s*(?:number|no\.?|#)?\s*#?\s*(\d{3,})\b", re.IGNORECASE)
_JOB_HASH_RE = re.compile(r"#\s*(\d{3,})\b")
_JOB_BARE_RE = re.compile(r"(?<![\$\d.,/-])\b(\d{5,})\b(?![.,/-]?\d)")

_CUSTOMER_RE = re.compile(
    r"\b(?:for|customer|client)\s+((?:[A-Z][\w&'.-]*)(?:\s+(?:[A-Z][\w&'.-]*|&|of))*)"
)
_CUSTOMER_STOPWORDS = {
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "January", "February", "March", "April", "May", "June", "July", "August", "September", "October",
    "November", "December", "Today", "Tomorrow", "Yesterday", "This", "Next", "Last", "All", "Every",
}

_LIMIT_RE = re.compile(
    r"\b(?:(?:show|list|give|find|get)\s+(?:me\s+)?(?:the\s+)?(?:top\s+|first\s+)?|top\s+|first\s+)"
    r"(\d{1,3})\b(?!\s+(?:days?|weeks?|months?))",
    re.IGNORECASE,
)
_OVERDUE_RE = re.compile(r"\b(overdue|past\s+due|late)\b", re.IGNORECASE)


class EntityExtractor(Protocol):
    async def extract(self, query: str, now: datetime) -> IntentEntities:
        ...


class RuleBasedExtractor:
    """Deterministic regex and fuzzy-match extraction.

    Date phrases are left to the classifier's date parser; everything else
    the router filters on is pulled out here.
    """

    def __init__(self, known_customers: Sequence[str] = (), customer_cutoff: float = 90.0) -> None:
        self.known_customers = list(known_customers)
        self.customer_cutoff = customer_cutoff

    async def extract(self, query: str, now: datetime) -> IntentEntities:
        return self.extract_sync(query)

    def extract_sync(self, query: str) -> IntentEntities:
        entities = IntentEntities()
        exclude, remaining = _pull(_EXCLUDE_RE, query)
        include, remaining = _pull(_INCLUDE_RE, remaining)
        include.extend(match.group(1) for match in _AT_TAG_RE.finditer(remaining))
        if _IN_PRODUCTION_RE.search(remaining):
            include.append("production")

        entities.exclude_tags = dedupe_tags(exclude)
        entities.tags = dedupe_tags(include)
        entities.job_numbers = _job_numbers(query)
        entities.customer_names = self._customers(query)
        entities.limit = _limit(query)
        entities.overdue = bool(_OVERDUE_RE.search(query))
        entities.keywords = _keywords(query)
        return entities

    def _customers(self, query: str) -> list[str]:
        names: list[str] = []
        for match in _CUSTOMER_RE.finditer(query):
            words = match.group(1).split()
            while words and (words[-1] in {"&", "of"} or words[-1] in _CUSTOMER_STOPWORDS):
                words.pop()
            if words and words[0] not in _CUSTOMER_STOPWORDS:
                names.append(" ".join(words).rstrip(".,"))
        if self.known_customers:
            for name, _score, _idx in process.extract(
                query,
                self.known_customers,
                scorer=fuzz.partial_ratio,
                processor=utils.default_process,
                score_cutoff=self.customer_cutoff,
                limit=3,
            ):
                names.append(name)
        return list(dict.fromkeys(names))


class _LLMDateRange(BaseModel):
    start: date
    end: date
    label: str = ""


class _LLMReply(BaseModel):
    tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)
    job_numbers: list[str] = Field(default_factory=list)
    customer_names: list[str] = Field(default_factory=list)
    date_ranges: list[_LLMDateRange] = Field(default_factory=list)
    overdue: bool = False
    limit: int | None = Field(default=None, ge=1)
    keywords: list[str] = Field(default_factory=list)


LLM_PROMPT = """Extract order-search entities from the query below.
Reply with a single JSON object with keys: tags, exclude_tags, job_numbers,
customer_names, date_ranges (list of {{"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}}),
overdue (bool), limit (int or null), keywords. Today is {today}.
Query: {query}"""


class LLMEntityExtractor:
    """Extraction delegated to a language-model completion callable.

    Any timeout, transport error or malformed reply falls back to the
    rule-based extractor so classification never fails on the model.
    """

    def __init__(
        self,
        complete: Callable[[str], Awaitable[str]],
        fallback: RuleBasedExtractor | None = None,
        timeout: float = 8.0,
    ) -> None:
        self.complete = complete
        self.fallback = fallback or RuleBasedExtractor()
        self.timeout = timeout

    async def extract(self, query: str, now: datetime) -> IntentEntities:
        prompt = LLM_PROMPT.format(today=now.date().isoformat(), query=query)
        try:
            raw = await asyncio.wait_for(self.complete(prompt), timeout=self.timeout)
            reply = _LLMReply.model_validate(orjson.loads(_strip_fences(raw)))
        except (asyncio.TimeoutError, orjson.JSONDecodeError, ValidationError) as exc:
            logger.warning("LLM extraction unusable, using rules: %s", exc)
            return await self.fallback.extract(query, now)
        except Exception as exc:  # transport errors from the completion callable
            logger.warning("LLM extraction failed, using rules: %s", exc)
            return await self.fallback.extract(query, now)

        tz = now.tzinfo or timezone.utc
        return IntentEntities(
            tags=dedupe_tags(reply.tags),
            exclude_tags=dedupe_tags(reply.exclude_tags),
            date_ranges=[
                DateRange(start=at_start(item.start, tz), end=at_end(item.end, tz), label=item.label or "llm")
                for item in reply.date_ranges
                if item.start <= item.end
            ],
            job_numbers=[number.strip() for number in reply.job_numbers if number.strip()],
            customer_names=list(dict.fromkeys(reply.customer_names)),
            overdue=reply.overdue,
            limit=reply.limit,
            keywords=list(dict.fromkeys(reply.keywords)),
        )


def _pull(pattern: re.Pattern[str], text: str) -> tuple[list[str], str]:
    values = [next(group for group in match.groups() if group) for match in pattern.finditer(text)]
    return values, pattern.sub(" ", text)


def _job_numbers(query: str) -> list[str]:
    found: list[str] = []
    for pattern in (_JOB_PREFIXED_RE, _JOB_HASH_RE, _JOB_BARE_RE):
        found.extend(match.group(1) for match in pattern.finditer(query))
    return list(dict.fromkeys(found))


def _limit(query: str) -> int | None:
    match = _LIMIT_RE.search(query)
    if not match:
        return None
    value = int(match.group(1))
    return value if value > 0 else None


def _keywords(query: str) -> list[str]:
    lowered = query.lower()
    return [
        canonical
        for canonical, spellings in PROCESS_KEYWORDS.items()
        if any(re.search(rf"\b{re.escape(spelling)}\b", lowered) for spelling in spellings)
    ]


def _strip_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


__all__ = [
    "EntityExtractor",
    "RuleBasedExtractor",
    "LLMEntityExtractor",
    "PROCESS_KEYWORDS",
]
