"""Time Utilities for UTC management"""

from datetime import datetime, timedelta, timezone


def get_utc_now() -> datetime:
    """
    Returns a naive UTC datetime.
    Matches the DB schema (TIMESTAMP WITHOUT TIME ZONE).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_from(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def hours_from(start: datetime, hours: int) -> datetime:
    return start + timedelta(hours=hours)
