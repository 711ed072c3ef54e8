"""Resolution of date phrases into timezone-aware ranges."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, tzinfo

from order_router.core.errors import AmbiguousIntent
from order_router.models.types import DateRange
from order_router.utils.time import at_end, at_start, local_now, start_of_iso_week

_DATE = r"\d{4}-\d{1,2}-\d{1,2}|\d{1,2}/\d{1,2}/\d{2,4}"
_MONTH = (
    r"jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?"
)
_WEEKDAY = r"monday|tuesday|wednesday|thursday|friday|saturday|sunday|mon|tues?|wed|thu(?:rs?)?|fri"

_EXPLICIT_RANGE_RE = re.compile(
    rf"\b(?:between|from)\s+({_DATE})\s+(?:and|to|through|until|-)\s+({_DATE})(?!\d)"
)
_LITERAL_RE = re.compile(rf"(?<![\d/-])({_DATE})(?![\d/-])")
_RELATIVE_DAY_RE = re.compile(r"\b(today|tonight|tomorrow|yesterday)\b")
_WEEK_RE = re.compile(r"\b(this|next|last|current|previous)\s+week\b")
_MONTH_RE = re.compile(r"\b(this|next|last|current|previous)\s+month\b")
_SPAN_RE = re.compile(r"\b(next|last|past)\s+(\d{1,3})\s+days?\b")
_MONTH_DAY_RE = re.compile(rf"\b({_MONTH})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\b(?:,?\s+(\d{{4}})\b)?")
_DAY_OF_MONTH_RE = re.compile(
    rf"\b(\d{{1,2}})(?:(?:st|nd|rd|th)\s+(?:of\s+)?|\s+of\s+)({_MONTH})\b(?:,?\s+(\d{{4}})\b)?"
)
_WHOLE_MONTH_RE = re.compile(rf"\b(?:in|during|for|throughout|due)\s+({_MONTH})\b(?:\s+(\d{{4}})\b)?")
_WEEKDAY_RE = re.compile(
    rf"\b(?:(by|before|until|till|through)\s+)?(?:(this|next|last|coming)\s+)?({_WEEKDAY})\b"
)
# month/day without a year; sizes like 1/2" or 3/4 inch are not dates
_SHORT_DATE_RE = re.compile(
    r'(?<![\d/.-])(\d{1,2})/(\d{1,2})(?![\d/.-])(?!\s*(?:"|in\b|inch|oz\b|ft\b|cm\b|mm\b|lbs?\b))'
)

# date language none of the patterns above resolve
_UNRESOLVED_RE = re.compile(
    r"\b(?:(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
    r"|(?:end|start|beginning|middle|mid)\s+of\s+(?:the\s+)?(?:day|week|month|quarter|year)"
    r"|weekend|eod|eow|eom)\b"
)

AMBIGUOUS_WORDS = ("soon", "later", "recently", "shortly", "sometime", "eventually", "asap", "a while")
_AMBIGUOUS_RE = re.compile(r"\b(" + "|".join(re.escape(word) for word in AMBIGUOUS_WORDS) + r")\b")

_MONTHS = {name: index for index, name in enumerate(
    ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"), start=1
)}
_WEEKDAYS = {name: index for index, name in enumerate(("mon", "tue", "wed", "thu", "fri", "sat", "sun"))}


class DateParser:
    """Turns the date language of a query into :class:`DateRange` values.

    Relative phrases resolve against ``now`` in its own timezone, or the
    parser's timezone when ``now`` is naive or missing. Weeks
    are ISO weeks (Monday through Sunday). A bare weekday is its next
    occurrence (today included), and a month or month/day without a year
    is the occurrence nearest to today. In strict mode, vague phrases, date
    language that cannot be resolved and literals that are not real dates
    raise :class:`AmbiguousIntent` instead of falling back to a default
    window.
    """

    def __init__(self, tz: tzinfo, strict: bool = True) -> None:
        self.tz = tz
        self.strict = strict

    def parse(self, text: str, now: datetime | None = None) -> list[DateRange]:
        tz = now.tzinfo if now is not None and now.tzinfo is not None else self.tz
        current = local_now(tz, now)
        today = current.date()
        remaining = text.lower()
        ranges: list[DateRange] = []

        for match in _EXPLICIT_RANGE_RE.finditer(remaining):
            start = self._literal(match.group(1))
            end = self._literal(match.group(2))
            if start is None or end is None:
                continue
            if start > end:
                self._ambiguous(match.group(0))
                continue
            ranges.append(self._span(start, end, match.group(0), tz))
        remaining = _EXPLICIT_RANGE_RE.sub(" ", remaining)

        for match in _SPAN_RE.finditer(remaining):
            direction, count = match.group(1), int(match.group(2))
            if direction == "next":
                ranges.append(self._span(today, today + timedelta(days=count), match.group(0), tz))
            else:
                ranges.append(self._span(today - timedelta(days=count), today, match.group(0), tz))
        remaining = _SPAN_RE.sub(" ", remaining)

        for match in _WEEK_RE.finditer(remaining):
            monday = start_of_iso_week(current).date()
            offset = {"next": 7, "last": -7, "previous": -7}.get(match.group(1), 0)
            monday += timedelta(days=offset)
            ranges.append(self._span(monday, monday + timedelta(days=6), match.group(0), tz))
        remaining = _WEEK_RE.sub(" ", remaining)

        for match in _MONTH_RE.finditer(remaining):
            offset = {"next": 1, "last": -1, "previous": -1}.get(match.group(1), 0)
            first = _shift_month(today.replace(day=1), offset)
            ranges.append(self._month(first, match.group(0), tz))
        remaining = _MONTH_RE.sub(" ", remaining)

        for match in _MONTH_DAY_RE.finditer(remaining):
            day = self._calendar_day(match.group(1), match.group(2), match.group(3), today, match.group(0))
            if day is not None:
                ranges.append(self._span(day, day, match.group(0), tz))
        remaining = _MONTH_DAY_RE.sub(" ", remaining)

        for match in _DAY_OF_MONTH_RE.finditer(remaining):
            day = self._calendar_day(match.group(2), match.group(1), match.group(3), today, match.group(0))
            if day is not None:
                ranges.append(self._span(day, day, match.group(0), tz))
        remaining = _DAY_OF_MONTH_RE.sub(" ", remaining)

        for match in _WHOLE_MONTH_RE.finditer(remaining):
            month = _MONTHS[match.group(1)[:3]]
            if match.group(2):
                first = date(int(match.group(2)), month, 1)
            else:
                first = min(
                    (date(year, month, 1) for year in (today.year - 1, today.year, today.year + 1)),
                    key=lambda candidate: abs(
                        (candidate.year - today.year) * 12 + candidate.month - today.month
                    ),
                )
            ranges.append(self._month(first, match.group(1), tz))
        remaining = _WHOLE_MONTH_RE.sub(" ", remaining)

        for match in _WEEKDAY_RE.finditer(remaining):
            deadline, qualifier, name = match.groups()
            day = _weekday(today, _WEEKDAYS[name[:3]], qualifier)
            if deadline and qualifier != "last":
                ranges.append(self._span(today, day, match.group(0), tz))
            else:
                ranges.append(self._span(day, day, match.group(0), tz))
        remaining = _WEEKDAY_RE.sub(" ", remaining)

        for match in _RELATIVE_DAY_RE.finditer(remaining):
            word = match.group(1)
            offset = {"tomorrow": 1, "yesterday": -1}.get(word, 0)
            day = today + timedelta(days=offset)
            ranges.append(self._span(day, day, word, tz))
        remaining = _RELATIVE_DAY_RE.sub(" ", remaining)

        for match in _LITERAL_RE.finditer(remaining):
            day = self._literal(match.group(1))
            if day is not None:
                ranges.append(self._span(day, day, match.group(1), tz))
        remaining = _LITERAL_RE.sub(" ", remaining)

        for match in _SHORT_DATE_RE.finditer(remaining):
            day = self._nearest(int(match.group(1)), int(match.group(2)), today, match.group(0))
            if day is not None:
                ranges.append(self._span(day, day, match.group(0), tz))
        remaining = _SHORT_DATE_RE.sub(" ", remaining)

        unresolved = _UNRESOLVED_RE.search(remaining)
        if unresolved:
            self._ambiguous(unresolved.group(0))
        if not ranges:
            vague = _AMBIGUOUS_RE.search(remaining)
            if vague:
                self._ambiguous(vague.group(1))
        return _dedupe(ranges)

    def _literal(self, raw: str) -> date | None:
        try:
            if "-" in raw:
                year, month, day = (int(part) for part in raw.split("-"))
            else:
                month, day, year = (int(part) for part in raw.split("/"))
                if year < 100:
                    year += 2000
            return date(year, month, day)
        except ValueError:
            self._ambiguous(raw)
            return None

    def _calendar_day(self, month_name: str, day: str, year: str | None, today: date, phrase: str) -> date | None:
        month = _MONTHS[month_name[:3]]
        if year is None:
            return self._nearest(month, int(day), today, phrase)
        try:
            return date(int(year), month, int(day))
        except ValueError:
            self._ambiguous(phrase)
            return None

    def _nearest(self, month: int, day: int, today: date, phrase: str) -> date | None:
        candidates = []
        for year in (today.year - 1, today.year, today.year + 1):
            try:
                candidates.append(date(year, month, day))
            except ValueError:
                continue
        if not candidates:
            self._ambiguous(phrase)
            return None
        return min(candidates, key=lambda candidate: abs((candidate - today).days))

    def _month(self, first: date, label: str, tz: tzinfo) -> DateRange:
        last = _shift_month(first, 1) - timedelta(days=1)
        return self._span(first, last, label, tz)

    @staticmethod
    def _span(start: date, end: date, label: str, tz: tzinfo) -> DateRange:
        return DateRange(start=at_start(start, tz), end=at_end(end, tz), label=label.strip())

    def _ambiguous(self, phrase: str) -> None:
        if self.strict:
            raise AmbiguousIntent("date_range", phrase)


def _weekday(today: date, target: int, qualifier: str | None) -> date:
    if qualifier == "next":
        monday = today - timedelta(days=today.weekday()) + timedelta(days=7)
        return monday + timedelta(days=target)
    if qualifier == "last":
        return today - timedelta(days=(today.weekday() - target) % 7 or 7)
    return today + timedelta(days=(target - today.weekday()) % 7)


def _shift_month(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def _dedupe(ranges: list[DateRange]) -> list[DateRange]:
    seen: set[tuple[datetime, datetime]] = set()
    unique: list[DateRange] = []
    for item in ranges:
        marker = (item.start, item.end)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
    return unique


__all__ = ["DateParser", "AMBIGUOUS_WORDS"]
