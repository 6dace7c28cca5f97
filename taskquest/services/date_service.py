"""
Date calculation service.
Handles weekday indexing for daily schedules and the day boundaries used by the sweep.
"""
from datetime import datetime, timedelta, date
from typing import Optional, Sequence

from taskquest.constants import WEEKDAY_COUNT


class DateService:
    """Service for date-related operations"""

    @staticmethod
    def weekday_index(target_date: date) -> int:
        """
        Weekday index used by daily schedules: 0 = Sunday ... 6 = Saturday.

        Python's date.weekday() starts at Monday, so it is shifted by one.
        """
        return (target_date.weekday() + 1) % WEEKDAY_COUNT

    @staticmethod
    def is_due(active_weekdays: Optional[Sequence[bool]], target_date: date) -> bool:
        """
        Check if a daily is due on a date.

        A missing schedule counts as due every day.
        """
        if not active_weekdays:
            return True
        return bool(active_weekdays[DateService.weekday_index(target_date)])

    @staticmethod
    def get_day_range(target_date: date) -> tuple[datetime, datetime]:
        """
        Get datetime range for a full day (midnight to midnight).

        Args:
            target_date: Date to get range for

        Returns:
            Tuple of (day_start, day_end) datetimes
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = datetime.combine(target_date + timedelta(days=1), datetime.min.time())
        return day_start, day_end

    @staticmethod
    def day_to_close(today: date) -> date:
        """The day a sweep running on `today` closes: the one that just ended"""
        return today - timedelta(days=1)

