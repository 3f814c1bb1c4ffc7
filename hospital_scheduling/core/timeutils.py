"""Date and time helpers for the scheduling grid."""

import re
from datetime import date, datetime, time

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")


def parse_date(value: str) -> date | None:
    """
    Parse a strict ``YYYY-MM-DD`` calendar date.

    Args:
        value: Raw date string

    Returns:
        Parsed date, or None if the string is malformed or not a real date
    """
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def parse_time(value: str) -> time | None:
    """
    Parse a strict 24-hour ``HH:MM`` time of day.

    Args:
        value: Raw time string

    Returns:
        Parsed time, or None if malformed
    """
    if not isinstance(value, str) or not _TIME_RE.match(value):
        return None
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except ValueError:
        return None


def is_valid_date(value: str) -> bool:
    """Check that ``value`` is a well-formed calendar date."""
    return parse_date(value) is not None


def is_valid_time(value: str) -> bool:
    """Check that ``value`` is a well-formed HH:MM time."""
    return parse_time(value) is not None


def combine(date_str: str, time_str: str) -> datetime | None:
    """Combine date and time strings into a naive datetime."""
    parsed_date = parse_date(date_str)
    parsed_time = parse_time(time_str)
    if parsed_date is None or parsed_time is None:
        return None
    return datetime.combine(parsed_date, parsed_time)


def format_date(value: date) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return value.strftime(DATE_FORMAT)


def format_time(value: time | datetime) -> str:
    """Format a time as ``HH:MM``."""
    return value.strftime(TIME_FORMAT)


def standard_time_slots(start_hour: int, end_hour: int, slot_minutes: int = 30) -> list[str]:
    """
    Build the bookable grid for one day.

    Slots start at ``start_hour:00`` and step by ``slot_minutes`` up to, but
    not including, ``end_hour:00``. With the defaults (8, 17, 30) this yields
    ``08:00`` through ``16:30``.

    Args:
        start_hour: First hour of the working day
        end_hour: Hour at which the working day ends (exclusive)
        slot_minutes: Slot length in minutes

    Returns:
        Sorted list of ``HH:MM`` strings
    """
    if end_hour <= start_hour:
        return []
    slots = []
    minute_of_day = start_hour * 60
    while minute_of_day < end_hour * 60:
        hours, minutes = divmod(minute_of_day, 60)
        slots.append(f"{hours:02d}:{minutes:02d}")
        minute_of_day += slot_minutes
    return slots
