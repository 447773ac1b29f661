"""Centralized datetime utilities for consistent timezone handling.

All functions return naive UTC datetimes for database compatibility
(SQLAlchemy models use naive UTC).

Usage:
    from notifier.core.datetime_utils import utc_now, get_cutoff

    now = utc_now()
    cutoff = get_cutoff(seconds=300)
    stale = query.where(NotificationJob.updated_at < cutoff)
"""

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    Replaces deprecated datetime.utcnow().
    """
    return datetime.now(UTC).replace(tzinfo=None)


def get_cutoff(seconds: int = 0, minutes: int = 0, hours: int = 0) -> datetime:
    """Get cutoff datetime for filtering queries.

    Args:
        seconds: Seconds to subtract from now
        minutes: Minutes to subtract from now
        hours: Hours to subtract from now

    Returns:
        Naive UTC datetime representing the cutoff point
    """
    delta = timedelta(seconds=seconds, minutes=minutes, hours=hours)
    return utc_now() - delta


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)
