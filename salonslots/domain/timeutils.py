"""
Conversions between stored instants and the minute-of-day coordinate space.

All interval arithmetic works on timezone-naive integer minutes. This module
is the only place where the salon timezone enters the picture.
"""

from datetime import date as _date
from datetime import datetime as _datetime
from typing import Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import InputError

MINUTES_PER_DAY = 24 * 60


def minutes_to_time(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_to_minutes(value: str) -> int:
    """
    Parse "HH:MM" into minutes since midnight.

    "24:00" is accepted as the end of the day.
    """
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError) as exc:
        raise InputError(f"Invalid time '{value}', expected HH:MM") from exc

    total = hours * 60 + minutes
    if not 0 <= minutes < 60 or not 0 <= total <= MINUTES_PER_DAY:
        raise InputError(f"Time out of range: '{value}'")
    return total


def to_date(value) -> Date:
    """
    Normalize a date-like value to a pendulum ``Date``.

    Accepts ``date``/``datetime`` instances (a datetime contributes its own
    calendar date, so convert to the salon timezone first) and "YYYY-MM-DD"
    strings.
    """
    if isinstance(value, str):
        return parse_date(value)
    if isinstance(value, (_date, _datetime)):
        return pendulum.date(value.year, value.month, value.day)
    raise InputError(f"Expected a date, got {value!r}")


def parse_date(value: str) -> Date:
    """Parse a strict "YYYY-MM-DD" string."""
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except (TypeError, ValueError) as exc:
        raise InputError(f"Malformed date '{value}', expected YYYY-MM-DD") from exc


def day_of_week(day: _date) -> int:
    """Return the weekday with 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def date_key(day: _date) -> str:
    """Return the "YYYY-MM-DD" key used to group slots by date."""
    return day.isoformat()


def minutes_to_datetime(day: _date, minutes: int, timezone: str) -> DateTime:
    """
    Build the instant for a wall-clock minute of a calendar day.

    Wall-clock construction keeps DST days correct: 10:00 stays 10:00 local
    time regardless of how many real minutes passed since midnight.
    """
    day = to_date(day)
    if minutes == MINUTES_PER_DAY:
        day = day.add(days=1)
        minutes = 0
    return pendulum.datetime(
        day.year, day.month, day.day, minutes // 60, minutes % 60, tz=timezone
    )


def datetime_to_minutes(value: _datetime, timezone: str) -> int:
    """Return the minute-of-day of an instant in the given timezone."""
    local = pendulum.instance(value).in_timezone(timezone)
    return local.hour * 60 + local.minute


def day_bounds(day: _date, timezone: str) -> Tuple[DateTime, DateTime]:
    """Return the [start, end) instants covering a calendar day locally."""
    return (
        minutes_to_datetime(day, 0, timezone),
        minutes_to_datetime(day, MINUTES_PER_DAY, timezone),
    )


def local_today(now: _datetime, timezone: str) -> Date:
    """Return the calendar date of ``now`` in the salon timezone."""
    return pendulum.instance(now).in_timezone(timezone).date()
