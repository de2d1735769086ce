"""Zone-aware time arithmetic for slot generation and conflict checks.

All instants leaving this module are timezone-aware UTC datetimes. Availability
windows are stored as HH:MM strings local to their own IANA zone and are
resolved to UTC instants for a concrete calendar date.
"""

import re
from collections.abc import Iterator
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import InvalidRequest

# Candidate start times advance on a fixed grid, independent of meeting duration
SLOT_STEP_MINUTES = 15

HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, raising InvalidRequest for unknown zones"""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidRequest(f"Unknown timezone: {name}") from None


def ensure_utc(value: datetime) -> datetime:
    """Normalize to aware UTC. Naive values are taken to already be UTC
    (some backends, e.g. SQLite, drop tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert to UTC, interpreting a naive value in tz_name"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=get_zone(tz_name))
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> time:
    if not value or not HHMM_PATTERN.match(value):
        raise InvalidRequest(f"Time must be in HH:MM format: {value!r}")
    hour, minute = (int(part) for part in value.split(":"))
    return time(hour, minute)


def window_bounds(
    target_date: date, start_time: str, end_time: str, tz_name: Optional[str]
) -> tuple[datetime, datetime]:
    """UTC instants for an HH:MM-HH:MM window on target_date in the window's zone"""
    zone = get_zone(tz_name)
    start = datetime.combine(target_date, parse_hhmm(start_time), tzinfo=zone)
    end = datetime.combine(target_date, parse_hhmm(end_time), tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def step_slots(
    window_start: datetime,
    window_end: datetime,
    duration_minutes: int,
    step_minutes: int = SLOT_STEP_MINUTES,
) -> Iterator[datetime]:
    """Yield candidate starts from window_start on a fixed step.

    Stops at the first candidate whose start + duration would spill past
    window_end, so every yielded slot fits entirely inside the window.
    """
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)
    current = window_start
    while current < window_end and current + duration <= window_end:
        yield current
        current += step


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: [a_start, a_end) vs [b_start, b_end)"""
    return a_start < b_end and b_start < a_end


def buffered(
    start: datetime, end: datetime, before_minutes: int = 0, after_minutes: int = 0
) -> tuple[datetime, datetime]:
    """Widen an interval by its idle buffers"""
    return (
        start - timedelta(minutes=before_minutes or 0),
        end + timedelta(minutes=after_minutes or 0),
    )


def day_of_week(value: Union[date, datetime], tz_name: Optional[str] = None) -> int:
    """Weekday index with Sunday=0 .. Saturday=6.

    A datetime is first moved into tz_name so the weekday is the one observed
    locally; a plain date is already a calendar day.
    """
    if isinstance(value, datetime):
        if tz_name:
            value = to_utc(value, tz_name).astimezone(get_zone(tz_name))
        value = value.date()
    # date.weekday() is Monday=0
    return (value.weekday() + 1) % 7
