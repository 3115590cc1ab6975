"""
Datetime utilities for appointment windows and timezone handling.
Appointment dates and times are naive local values in the business timezone;
audit timestamps are timezone-aware UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def local_now(tz_name: str) -> datetime:
    """Current wall-clock time in the business timezone, as a naive datetime."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def to_iso_string(dt: datetime) -> str:
    """
    Convert datetime to ISO format string.
    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt.isoformat()


def add_minutes(start: time, minutes: int) -> Optional[time]:
    """
    Add minutes to a wall-clock time.

    Returns None when the result would roll past midnight, since an
    appointment never spans two calendar days.
    """
    anchor = datetime.combine(date.min, start)
    result = anchor + timedelta(minutes=minutes)
    if result.date() != date.min:
        return None
    return result.time()


def format_time(value: time) -> str:
    """Format a time as ``HH:MM:SS`` for the database."""
    return value.strftime("%H:%M:%S")


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open interval overlap: touching windows do not overlap."""
    return start_a < end_b and end_a > start_b
