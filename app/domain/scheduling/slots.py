"""Slot generator - bookable start/end pairs for one meeting type on one date.

Pure computation over rows the caller already fetched; safe to run from any
thread and to fan out across dates or hosts.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ...models import AvailabilityWindow, Booking, MeetingType
from .conflicts import has_conflict
from .time_utils import ensure_utc, get_zone, step_slots, window_bounds


@dataclass(frozen=True)
class Slot:
    start_time: datetime  # UTC
    end_time: datetime  # UTC
    duration_minutes: int
    timezone: str = "UTC"  # Zone the caller asked to see the slot in

    @property
    def local_start(self) -> datetime:
        return self.start_time.astimezone(get_zone(self.timezone))

    @property
    def local_end(self) -> datetime:
        return self.end_time.astimezone(get_zone(self.timezone))


def min_bookable_instant(meeting_type: MeetingType, now: datetime) -> datetime:
    return ensure_utc(now) + timedelta(hours=meeting_type.min_notice_hours or 0)


def max_bookable_instant(meeting_type: MeetingType, now: datetime) -> datetime:
    """Latest start the booking horizon allows"""
    return ensure_utc(now) + timedelta(days=meeting_type.max_booking_days or 0)


def generate_slots(
    meeting_type: MeetingType,
    windows: Iterable[AvailabilityWindow],
    confirmed_bookings: Iterable[Booking],
    target_date: date,
    now: datetime,
    timezone: Optional[str] = None,
) -> list[Slot]:
    """Free slots on target_date, in window order then start order.

    Starts outside [now + notice, now + max_booking_days] are dropped, the
    same bounds create_booking enforces.

    Each window is stepped independently; overlapping windows are a host
    misconfiguration and may produce duplicate starts. Buffers of both the
    candidate and the existing bookings are kept free.
    """
    cutoff = min_bookable_instant(meeting_type, now)
    horizon = max_bookable_instant(meeting_type, now)
    duration = timedelta(minutes=meeting_type.duration_minutes)
    bookings = list(confirmed_bookings)
    display_zone = timezone or "UTC"

    slots = []
    for window in windows:
        window_start, window_end = window_bounds(
            target_date, window.start_time, window.end_time, window.timezone
        )
        for start in step_slots(window_start, window_end, meeting_type.duration_minutes):
            if start < cutoff or start > horizon:
                continue
            end = start + duration
            if has_conflict(
                meeting_type.host_id,
                start,
                end,
                None,
                bookings,
                buffer_before_minutes=meeting_type.buffer_before_minutes or 0,
                buffer_after_minutes=meeting_type.buffer_after_minutes or 0,
            ):
                continue
            slots.append(
                Slot(
                    start_time=start,
                    end_time=end,
                    duration_minutes=meeting_type.duration_minutes,
                    timezone=display_zone,
                )
            )
    return slots
