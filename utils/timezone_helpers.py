"""
Timezone utilities for evaluating shift schedules on the site's wall clock
while all persisted timestamps stay in UTC.
"""

from datetime import date, datetime
from datetime import time as datetime_time
from datetime import timezone
from zoneinfo import ZoneInfo


def from_utc_to_local(utc_dt: datetime, tz: str) -> datetime:
    """
    Convert UTC datetime to local datetime in the specified timezone.

    Args:
        utc_dt: UTC datetime (naive values are treated as UTC)
        tz: IANA timezone string (e.g., 'Europe/London')

    Returns:
        datetime: Local datetime in the specified timezone
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    target_tz = ZoneInfo(tz)
    return utc_dt.astimezone(target_tz)


def local_start_of_day(local_date: date, tz: str) -> datetime:
    """
    Get the start of day (00:00:00) in the specified timezone.

    Returns:
        datetime: Start of day in UTC
    """
    target_tz = ZoneInfo(tz)
    local_start = datetime.combine(local_date, datetime_time.min, tzinfo=target_tz)
    return local_start.astimezone(timezone.utc)


def local_time_to_utc(local_date: date, local_time: datetime_time, tz: str) -> datetime:
    """Wall-clock time on a site-local date, expressed in UTC."""
    local_dt = datetime.combine(local_date, local_time, tzinfo=ZoneInfo(tz))
    return local_dt.astimezone(timezone.utc)


def local_weekday(local_dt: datetime) -> int:
    """Weekday with 0=Sunday ... 6=Saturday, matching worker shift_days."""
    return (local_dt.weekday() + 1) % 7


def validate_timezone(tz: str) -> bool:
    """
    Validate if the timezone string is a valid IANA timezone.

    Returns:
        bool: True if valid, False otherwise
    """
    try:
        ZoneInfo(tz)
        return True
    except Exception:
        return False
