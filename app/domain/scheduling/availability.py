"""Availability index - active working-hour windows for a host on a given date"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from ...models import AvailabilityWindow
from .time_utils import day_of_week, ensure_utc, get_zone, window_bounds

logger = logging.getLogger(__name__)


class AvailabilityIndex:
    """Looks up a host's recurring weekly windows.

    An empty result means the host takes no bookings that day; it is not an error.
    """

    def __init__(self, availability_repo):
        self.availability_repo = availability_repo

    def windows_for(self, host_id: int, target_date: date) -> list[AvailabilityWindow]:
        weekday = day_of_week(target_date)
        windows = self.availability_repo.find_active_windows(host_id, weekday)
        if not windows:
            logger.debug(f"No availability for host {host_id} on weekday {weekday}")
        return windows

    def covering_window(
        self, host_id: int, start: datetime, end: datetime
    ) -> Optional[AvailabilityWindow]:
        """First active window that fully contains [start, end), or None.

        Windows are local to their own zone, so the UTC day before and after
        are also searched and each window is resolved on its local date.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        utc_day = start.date()
        seen = set()
        for offset in (-1, 0, 1):
            weekday = day_of_week(utc_day + timedelta(days=offset))
            for window in self.availability_repo.find_active_windows(host_id, weekday):
                if window.id in seen:
                    continue
                seen.add(window.id)
                local_date = start.astimezone(get_zone(window.timezone)).date()
                if day_of_week(local_date) != window.day_of_week:
                    continue
                window_start, window_end = window_bounds(
                    local_date, window.start_time, window.end_time, window.timezone
                )
                if window_start <= start and end <= window_end:
                    return window
        return None
