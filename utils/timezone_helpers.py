"""
Timezone utilities for attendance day boundaries and timestamp rendering.

All timestamps are stored in UTC. "Today" for a worker is always evaluated in
the configured local timezone, from local midnight to the next local midnight.
"""

from datetime import date, datetime
from datetime import time as datetime_time
from datetime import timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo


def from_utc_to_local(utc_dt: datetime, tz: str) -> datetime:
    """
    Convert UTC datetime to local datetime in the specified timezone.

    Args:
        utc_dt: UTC datetime (naive values are assumed to be UTC)
        tz: IANA timezone string (e.g., 'America/New_York', 'America/Los_Angeles')

    Returns:
        datetime: Local datetime in the specified timezone
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    return utc_dt.astimezone(ZoneInfo(tz))


def local_start_of_day(date_or_dt, tz: str) -> datetime:
    """
    Get local midnight (00:00:00) of the given day, expressed in UTC.

    A datetime is first converted to the local timezone so that, e.g., 02:00 UTC
    on the 5th counts as the 4th in America/New_York.
    """
    if isinstance(date_or_dt, datetime):
        local_date = from_utc_to_local(date_or_dt, tz).date()
    else:
        local_date = date_or_dt

    local_start = datetime.combine(local_date, datetime_time.min, tzinfo=ZoneInfo(tz))
    return local_start.astimezone(timezone.utc)


def local_day_bounds(as_of: datetime, tz: str) -> Tuple[datetime, datetime]:
    """
    Half-open UTC interval [start, end) covering the local calendar day of `as_of`.

    `end` is the following local midnight, so DST transition days are 23 or 25
    hours long rather than a fixed 24.
    """
    local_date: date = from_utc_to_local(as_of, tz).date()
    start = local_start_of_day(local_date, tz)
    end = local_start_of_day(local_date + timedelta(days=1), tz)
    return start, end


def validate_timezone(tz: str) -> bool:
    """
    Validate if the timezone string is a valid IANA timezone.
    """
    try:
        ZoneInfo(tz)
        return True
    except Exception:
        return False


def get_default_timezone() -> str:
    """
    Default timezone when ATTENDANCE_TIMEZONE is not configured (US Eastern).
    """
    return "America/New_York"


def ensure_timezone_aware(dt: datetime, default_tz: Optional[str] = None) -> datetime:
    """
    Ensure a datetime is timezone-aware, defaulting to UTC if naive.
    """
    if dt.tzinfo is None:
        if default_tz:
            return dt.replace(tzinfo=ZoneInfo(default_tz))
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_utc_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime object to an ISO 8601 string with 'Z' suffix.

    Naive datetimes are assumed to be UTC; aware ones are converted to UTC.
    """
    if dt is None:
        return None

    iso_string = ensure_timezone_aware(dt).astimezone(timezone.utc).isoformat()
    if iso_string.endswith("+00:00"):
        return iso_string.replace("+00:00", "Z")
    return iso_string


def format_watermark_timestamp(dt: datetime, tz: str) -> str:
    """
    Long human-readable local timestamp, e.g.
    'Monday, October 19, 2026 at 9:05:12 AM'.
    """
    local = from_utc_to_local(dt, tz)
    hour = local.hour % 12 or 12
    return (
        f"{local.strftime('%A, %B')} {local.day}, {local.year} at "
        f"{hour}:{local.strftime('%M:%S %p')}"
    )
