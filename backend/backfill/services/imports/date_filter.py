"""
User-selected date range filtering for imported events.
"""
from datetime import datetime, time, timezone
from typing import Callable, Optional

from backfill.models.schemas.imports import DATE_FORMAT, TIMESTAMP_FORMAT

DateRangeFilter = Callable[[str], bool]


def create_date_range_filter(start_date: Optional[str] = None, end_date: Optional[str] = None) -> DateRangeFilter:
    """
    Build a predicate telling whether a canonical timestamp lies in a day range.

    Both bounds are inclusive UTC days: ``start_date`` from 00:00:00 and
    ``end_date`` through 23:59:59.999999. The bounds are parsed once here.

    Raises:
        ValueError: If a bound is not a valid YYYY-MM-DD date
    """
    start = (
        datetime.combine(datetime.strptime(start_date, DATE_FORMAT).date(), time.min, tzinfo=timezone.utc)
        if start_date else None
    )
    end = (
        datetime.combine(datetime.strptime(end_date, DATE_FORMAT).date(), time.max, tzinfo=timezone.utc)
        if end_date else None
    )

    def is_in_range(timestamp: str) -> bool:
        try:
            moment = datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return False
        if start is not None and moment < start:
            return False
        if end is not None and moment > end:
            return False
        return True

    return is_in_range
