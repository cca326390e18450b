from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from bangs.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional[ZoneInfo]:
    tz_name = tz_name or settings.DEFAULT_TIMEZONE
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def utcnow() -> datetime:
    """Current time as a UTC-aware datetime."""
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_local(dt: datetime | None, tz_name: Optional[str] = None) -> datetime | None:
    """Convert a UTC timestamp into the user's (or default) timezone for display."""
    if dt is None:
        return None
    tz = get_zoneinfo(tz_name)
    aware = to_utc_aware(dt)
    return aware.astimezone(tz) if tz else aware
