"""Time helpers."""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return a tzinfo for an IANA name, defaulting to UTC."""
    if not name:
        return timezone.utc
    return ZoneInfo(name)


def local_now(tz: tzinfo, now: datetime | None = None) -> datetime:
    """Return ``now`` (or the current time) expressed in ``tz``."""
    if now is None:
        return datetime.now(tz=tz)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_iso_week(moment: datetime) -> datetime:
    """Monday 00:00 of the ISO week containing ``moment``."""
    return start_of_day(moment - timedelta(days=moment.weekday()))


def at_start(day: date, tz: tzinfo) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=tz)


def at_end(day: date, tz: tzinfo) -> datetime:
    return end_of_day(at_start(day, tz))
