"""
Parsing of the free-form shift times admins type into worker profiles, and
the "last hour before shift end" window that gates exit detection for
regular (non-overtime) sessions.
"""

import re
from datetime import datetime, timedelta
from datetime import time as datetime_time
from typing import Optional

from utils.timezone_helpers import from_utc_to_local

_24H = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_12H = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")


class ShiftTimeError(ValueError):
    """Raised when a shift time is present but not in a supported format."""


def parse_shift_time(raw: str) -> datetime_time:
    """
    Parse "HH:MM", "HH:MM:SS" or 12-hour "h[:mm] am/pm" (case-insensitive).

    Raises:
        ShiftTimeError: the string does not match a supported format, or
            hour/minute are out of range.
    """
    s = raw.strip().lower()

    m = _24H.match(s)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        second = int(m.group(3)) if m.group(3) else 0
        if 0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59:
            # Seconds are validated but shift times are minute resolution
            return datetime_time(hour, minute)
        raise ShiftTimeError(f"Shift time out of range: {raw!r}")

    m = _12H.match(s)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2)) if m.group(2) else 0
        if not (1 <= hour <= 12) or not (0 <= minute <= 59):
            raise ShiftTimeError(f"Shift time out of range: {raw!r}")
        if m.group(3) == "pm" and hour != 12:
            hour += 12
        if m.group(3) == "am" and hour == 12:
            hour = 0
        return datetime_time(hour, minute)

    raise ShiftTimeError(
        f"Invalid shift time {raw!r}: expected HH:MM, HH:MM:SS, or h:mm AM/PM"
    )


def parse_optional_shift_time(raw: Optional[str]) -> Optional[datetime_time]:
    """None for a missing/blank value; ShiftTimeError for a malformed one."""
    if raw is None or not raw.strip():
        return None
    return parse_shift_time(raw)


def is_in_last_hour_window(
    now_utc: datetime,
    shift_end: datetime_time,
    tz: str,
    window_minutes: int = 60,
) -> bool:
    # Anchored to the site-local date of now, not the clock-in date
    local_now = from_utc_to_local(now_utc, tz)
    shift_end_local = datetime.combine(local_now.date(), shift_end, tzinfo=local_now.tzinfo)
    window_start = shift_end_local - timedelta(minutes=window_minutes)
    return window_start <= local_now <= shift_end_local
