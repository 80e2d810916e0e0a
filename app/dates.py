"""
Calendar-date helpers.

Snapshots and exchange rates are keyed by calendar day, and "today"
depends on whose day it is: a user in America/Los_Angeles is still on
yesterday for eight hours after UTC midnight.
"""

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


logger = logging.getLogger(__name__)


def today_in_timezone(tz_name: str | None) -> date:
    """Current calendar date in ``tz_name``; unknown or empty zones fall back to UTC."""
    if not tz_name:
        return datetime.now(timezone.utc).date()
    try:
        return datetime.now(ZoneInfo(tz_name)).date()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", tz_name)
        return datetime.now(timezone.utc).date()


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield every date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def parse_iso_date(value: str) -> date:
    """
    Parse a strict YYYY-MM-DD string.

    Raises:
        ValueError: If the value is not a valid date in that format.
    """
    if len(value) != 10:
        raise ValueError(f"Invalid date format: {value}. Expected YYYY-MM-DD")
    return date.fromisoformat(value)
