"""
Common date/time utility functions for consistent date/time handling across the application

Storage: All dates are stored in UTC in the backend.
Daily usage buckets are keyed by the UTC calendar day.
"""

from datetime import date, datetime, time, timedelta, timezone


def as_utc(dt: datetime) -> datetime:
    """
    Convert dt to tz-aware UTC.
    If dt is naive, we treat it as UTC (consistent with existing behavior).

    Args:
        dt: datetime object (naive or timezone-aware)

    Returns:
        datetime object in UTC timezone
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def utc_day(dt: datetime) -> date:
    """UTC calendar day of dt."""
    return as_utc(dt).date()


def start_of_day_utc(day: date) -> datetime:
    """Midnight UTC at the start of day."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def next_day_at_hour(dt: datetime, hour: int) -> datetime:
    """
    The day after dt (UTC), at hour:00:00.

    Used for the default slot of a freshly confirmed donation appointment.
    """
    day = utc_day(dt) + timedelta(days=1)
    return datetime.combine(day, time(hour=hour), tzinfo=timezone.utc)
