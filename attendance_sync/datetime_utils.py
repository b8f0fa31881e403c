"""
DateTime utility functions for the sync agent.

Queue timestamps are stored as integer milliseconds since the epoch so that
they compare the same way the UI's Date.now() values do.
"""
import time
from datetime import datetime, timezone

MS_PER_SECOND = 1000
MS_PER_HOUR = 60 * 60 * MS_PER_SECOND
MS_PER_DAY = 24 * MS_PER_HOUR


def now_ms():
    """Current time in milliseconds since the epoch."""
    return int(time.time() * MS_PER_SECOND)


def ms_to_iso(value):
    """
    Format an epoch-milliseconds value as an ISO-8601 UTC string.

    Args:
        value: int milliseconds, or None

    Returns:
        str: ISO string, or None if value is None
    """
    if value is None:
        return None
    return datetime.fromtimestamp(value / MS_PER_SECOND, tz=timezone.utc).isoformat()


def days_to_ms(days):
    return int(days * MS_PER_DAY)
