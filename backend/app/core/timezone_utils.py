"""
Timezone utilities for the LinguaDesk back office.

Schools configure their own timezone; payout periods are calendar dates in
that timezone while lessons are stored in UTC.
"""

from datetime import date, datetime, time, timezone
from typing import Tuple

import pytz


def get_timezone(tz_name: str) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a known timezone
    """
    return pytz.timezone(tz_name)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_day_bounds_utc(day: date, tz_name: str) -> Tuple[datetime, datetime]:
    """
    Get the first and last instant of a local calendar day as UTC datetimes.

    Args:
        day: Local calendar date
        tz_name: IANA timezone of the organization

    Returns:
        (start, end) where end is 23:59:59.999999 local time
    """
    return period_bounds_utc(day, day, tz_name)


def period_bounds_utc(period_start: date, period_end: date, tz_name: str) -> Tuple[datetime, datetime]:
    """
    Convert an inclusive local date range into UTC datetime bounds.

    ``localize`` is used instead of ``replace(tzinfo=...)`` so DST offsets are
    applied for the specific dates.
    """
    tz = get_timezone(tz_name)
    start_local = tz.localize(datetime.combine(period_start, time.min))
    end_local = tz.localize(datetime.combine(period_end, time.max))
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
