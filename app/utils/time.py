"""Time Utilities for UTC management"""

import calendar
from datetime import datetime, timezone


def get_utc_now() -> datetime:
    """
    Returns a naive UTC datetime.
    Matches the DB schema (TIMESTAMP WITHOUT TIME ZONE).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_epoch_seconds(value: datetime) -> int:
    """Naive UTC datetime -> whole Unix seconds (truncated)"""
    return calendar.timegm(value.utctimetuple())


def from_epoch_seconds(value: int) -> datetime:
    """Unix seconds -> naive UTC datetime"""
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
