"""
Timezone utilities for the booking engine.

Booking dates and times are stored as naive local values in the
schedule timezone; audit timestamps are stored in UTC.
"""

from datetime import date, datetime, time
from typing import Optional, Tuple

import pytz

from .config import settings


def get_schedule_timezone(name: Optional[str] = None) -> pytz.BaseTzInfo:
    """Return the pytz timezone bookings are interpreted in."""
    return pytz.timezone(name or settings.schedule_timezone)


def get_schedule_now(now: Optional[datetime] = None) -> datetime:
    """
    Get the current datetime in the schedule timezone.

    Args:
        now: Optional reference instant. Naive values are assumed to be UTC.

    Returns:
        Timezone-aware datetime in the schedule timezone
    """
    tz = get_schedule_timezone()
    if now is None:
        return datetime.now(tz)
    if now.tzinfo is None:
        now = pytz.UTC.localize(now)
    return now.astimezone(tz)


def get_schedule_today_and_time(now: Optional[datetime] = None) -> Tuple[date, time]:
    """Split the schedule-local 'now' into a date and a naive time-of-day."""
    local_now = get_schedule_now(now)
    return local_now.date(), local_now.time().replace(tzinfo=None, microsecond=0)


def utc_now(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` (or the current instant) as an aware UTC datetime."""
    if now is None:
        return datetime.now(pytz.UTC)
    if now.tzinfo is None:
        return pytz.UTC.localize(now)
    return now.astimezone(pytz.UTC)
