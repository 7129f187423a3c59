"""
Time utilities for the Taskboard application.

This module provides a single source of truth for time operations,
so timestamps written by different operations stay comparable.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from storage to aware UTC.

    SQLite drops tzinfo on round-trip, so naive values are assumed to be UTC.

    Args:
        value: datetime as loaded from the database, or None

    Returns:
        timezone-aware datetime in UTC, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def expiry_from_now(days: int) -> datetime:
    """
    Calculate an expiry timestamp a number of days ahead.

    Args:
        days: Number of days ahead

    Returns:
        timezone-aware datetime in UTC
    """
    return utc_now() + timedelta(days=days)
