"""
Datetime utility functions

All timestamps in lockgate are timezone-aware UTC.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC

    asyncpg returns aware values for timestamptz columns; naive values are
    assumed to already be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_hours(start: datetime, hours: float) -> datetime:
    return start + timedelta(seconds=round(hours * 3600))


def isoformat_z(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing Z, the format clients parse"""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace('+00:00', 'Z')
