from datetime import date, timedelta
from typing import List, Optional

import pandas as pd


def to_date(value) -> Optional[date]:
    """Normalize strings, timestamps and datetimes to a calendar date."""
    if value is None:
        return None
    if type(value) is date:
        return value
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.normalize().date()


class AdvancedCalendar:
    """
    Working-day calendar for inspection lead times and schedule shifts,
    with holiday support.
    """

    def __init__(self, holidays: Optional[List] = None, workweek: Optional[List[int]] = None):
        """
        Initialize calendar with holidays and workweek configuration.

        Args:
            holidays: List of holiday dates (strings, dates or timestamps)
            workweek: List of workday numbers (0=Monday to 6=Sunday)
        """
        self.holidays = {d for d in (to_date(h) for h in (holidays or [])) if d is not None}
        self.workweek = list(workweek) if workweek is not None else [0, 1, 2, 3, 4]  # Monday to Friday by default
        if not self.workweek:
            raise ValueError("Workweek must contain at least one day")

    def is_workday(self, day) -> bool:
        """
        Check if a date is a workday (not holiday and in workweek).

        Args:
            day: Date to check

        Returns:
            bool: True if workday, False otherwise
        """
        day = to_date(day)
        return day.weekday() in self.workweek and day not in self.holidays

    def next_workday(self, day) -> date:
        """First workday on or after ``day``."""
        current = to_date(day)
        while not self.is_workday(current):
            current += timedelta(days=1)
        return current

    def add_workdays(self, start, days: int) -> date:
        """
        Date that lies ``days`` workdays after ``start``.

        The start day itself is not counted, so a lead time of one workday
        after a Friday completion lands on Monday.

        Args:
            start: Starting date
            days: Number of workdays to add

        Returns:
            date: The resulting workday
        """
        current = to_date(start)
        if days <= 0:
            return self.next_workday(current)

        counted = 0
        while counted < days:
            current += timedelta(days=1)
            if self.is_workday(current):
                counted += 1
        return current
