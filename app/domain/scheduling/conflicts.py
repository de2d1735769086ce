"""Conflict resolver - pure overlap checks against an already-fetched booking set.

The caller scopes the bookings to one host and a superset time range; nothing
here touches storage.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from ...models import Booking, BookingStatus
from .time_utils import buffered, ensure_utc, overlaps


def booking_block(booking: Booking) -> tuple[datetime, datetime]:
    """Interval a confirmed booking occupies on the calendar, buffers included"""
    return buffered(
        ensure_utc(booking.start_time),
        ensure_utc(booking.end_time),
        booking.buffer_before_minutes or 0,
        booking.buffer_after_minutes or 0,
    )


def find_conflicts(
    host_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    confirmed_bookings: Iterable[Booking],
    exclude_booking_id: Optional[int] = None,
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> list[Booking]:
    """Bookings whose buffered interval overlaps the buffered candidate.

    exclude_booking_id drops a booking being rescheduled so it never
    conflicts with its own previous slot.
    """
    block_start, block_end = buffered(
        ensure_utc(candidate_start),
        ensure_utc(candidate_end),
        buffer_before_minutes,
        buffer_after_minutes,
    )

    conflicts = []
    for booking in confirmed_bookings:
        if booking.host_id != host_id or booking.status != BookingStatus.CONFIRMED.value:
            continue
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            continue
        other_start, other_end = booking_block(booking)
        if overlaps(block_start, block_end, other_start, other_end):
            conflicts.append(booking)
    return conflicts


def has_conflict(
    host_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    exclude_booking_id: Optional[int],
    confirmed_bookings: Iterable[Booking],
    buffer_before_minutes: int = 0,
    buffer_after_minutes: int = 0,
) -> bool:
    return bool(
        find_conflicts(
            host_id,
            candidate_start,
            candidate_end,
            confirmed_bookings,
            exclude_booking_id=exclude_booking_id,
            buffer_before_minutes=buffer_before_minutes,
            buffer_after_minutes=buffer_after_minutes,
        )
    )
