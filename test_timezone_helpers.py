from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from utils.timezone_helpers import (
    format_utc_datetime,
    format_watermark_timestamp,
    local_day_bounds,
    local_start_of_day,
)

TZ = "America/New_York"


def test_day_bounds_regular_day():
    start, end = local_day_bounds(datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc), TZ)

    assert start == datetime(2026, 10, 19, 4, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=24)


def test_day_bounds_follow_dst_transitions():
    # Spring forward: 8 March 2026 is 23 hours long in New York
    start, end = local_day_bounds(datetime(2026, 3, 8, 18, 0, tzinfo=timezone.utc), TZ)
    assert end - start == timedelta(hours=23)

    # Fall back: 1 November 2026 is 25 hours long
    start, end = local_day_bounds(datetime(2026, 11, 1, 18, 0, tzinfo=timezone.utc), TZ)
    assert end - start == timedelta(hours=25)


def test_early_utc_hours_belong_to_previous_local_day():
    start, _ = local_day_bounds(datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc), TZ)

    assert start == local_start_of_day(date(2026, 10, 18), TZ)


def test_format_utc_datetime():
    assert format_utc_datetime(None) is None
    assert format_utc_datetime(datetime(2026, 10, 19, 13, 5)) == "2026-10-19T13:05:00Z"
    local = datetime(2026, 10, 19, 9, 5, tzinfo=ZoneInfo(TZ))
    assert format_utc_datetime(local) == "2026-10-19T13:05:00Z"


def test_watermark_timestamp_is_local_and_unpadded():
    dt = datetime(2026, 10, 19, 13, 5, 12, tzinfo=timezone.utc)

    assert format_watermark_timestamp(dt, TZ) == "Monday, October 19, 2026 at 9:05:12 AM"
    assert format_watermark_timestamp(dt, "UTC") == "Monday, October 19, 2026 at 1:05:12 PM"
