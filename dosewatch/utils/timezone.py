from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dosewatch.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional[ZoneInfo]:
    tz_name = tz_name or getattr(settings, "DISPLAY_TIMEZONE", None)
    if not tz_name:
        return None
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def utcnow_naive() -> datetime:
    """Current UTC time without tzinfo, the representation used for storage."""
    return datetime.now(dt_timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-naive (tzinfo=None) for consistent storage/comparison.
    - Aware datetimes are converted to UTC and tzinfo is stripped
    - Naive datetimes are returned as-is (assumed UTC)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(dt_timezone.utc).replace(tzinfo=None)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC) for APIs needing tz-aware values.
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_display(dt: datetime | None) -> datetime | None:
    """Convert a stored UTC-naive datetime to the configured display timezone."""
    if dt is None:
        return None
    aware = to_utc_aware(dt)
    tz = get_zoneinfo()
    return aware.astimezone(tz) if tz else aware


def client_to_utc_naive(dt: datetime | None) -> datetime | None:
    """
    Normalize a client-supplied datetime for storage.
    - Aware datetimes are converted to UTC
    - Naive datetimes are wall-clock values in the display timezone, the same
      form ``fechaISO`` is returned in
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        tz = get_zoneinfo()
        if tz is None:
            return dt
        dt = dt.replace(tzinfo=tz)
    return to_utc_naive(dt)
