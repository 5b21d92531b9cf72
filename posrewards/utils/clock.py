"""
Time helpers.

Timestamps are stored as naive UTC. Store-local wall-clock time is only
needed for time-of-day promotion windows.
"""
import calendar
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_store_time(moment: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a naive UTC timestamp to naive wall-clock time in the store's zone."""
    if not tz_name:
        return moment
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return moment
    return moment.replace(tzinfo=timezone.utc).astimezone(zone).replace(tzinfo=None)


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 string into naive UTC.

    Raises:
        ValueError: if the string is not a valid ISO timestamp
    """
    if not isinstance(value, str):
        raise ValueError('must be an ISO-8601 string')
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def subtract_months(moment: datetime, months: int) -> datetime:
    """Same wall-clock time `months` earlier, clamped to the month's last day."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
