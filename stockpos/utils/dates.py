"""
Date helpers for the store's calendar convention.

Timestamps are persisted as naive UTC datetimes; a "day" is always the
calendar day in the store's local timezone, converted back to a UTC range
for querying.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the persisted convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_timezone(name: Optional[str], fallback: str = 'UTC') -> ZoneInfo:
    """Return the ZoneInfo for `name`, falling back when unset or unknown."""
    for candidate in (name, fallback, 'UTC'):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            continue
    return ZoneInfo('UTC')


def to_local(moment_utc: datetime, tz: ZoneInfo) -> datetime:
    """Convert a naive UTC datetime to an aware local datetime."""
    return moment_utc.replace(tzinfo=timezone.utc).astimezone(tz)


def local_day_bounds(moment_utc: datetime, tz: ZoneInfo) -> Tuple[date, datetime, datetime]:
    """
    Get the local calendar day containing `moment_utc`.

    Returns:
        tuple: (local_date, start_utc, end_utc) where the range is
        [start_utc, end_utc) expressed as naive UTC datetimes.
    """
    local_date = to_local(moment_utc, tz).date()
    return (local_date,) + local_date_bounds(local_date, tz)


def local_date_bounds(local_date: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """UTC range [start, end) covering `local_date` in timezone `tz`."""
    start_local = datetime.combine(local_date, time.min, tzinfo=tz)
    end_local = datetime.combine(local_date + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD); None/empty returns None."""
    if not value:
        return None
    return date.fromisoformat(value.strip()[:10])
