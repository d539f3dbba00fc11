"""
Schedule evaluation: time-window and day-set overlap between two trips.
"""

import re
from typing import FrozenSet, Iterable

from .errors import InvalidInputError

DAY_CODES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_DAY_ALIASES = {
    "monday": "mon",
    "tuesday": "tue",
    "tues": "tue",
    "wednesday": "wed",
    "thursday": "thu",
    "thur": "thu",
    "thurs": "thu",
    "friday": "fri",
    "saturday": "sat",
    "sunday": "sun",
}

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")

DEFAULT_TIME_WINDOW_MIN = 30


def parse_time(value: str) -> int:
    """Parse "H:MM AM|PM" into minutes since midnight (0-1439)"""
    if not isinstance(value, str):
        raise InvalidInputError(f"Time must be a string, got {type(value).__name__}")

    match = _TIME_PATTERN.match(value)
    if not match:
        raise InvalidInputError(f"Malformed time '{value}', expected 'H:MM AM' or 'H:MM PM'")

    hours = int(match.group(1))
    minutes = int(match.group(2))
    period = match.group(3).upper()

    if not 1 <= hours <= 12:
        raise InvalidInputError(f"Hour out of range in '{value}'")
    if not 0 <= minutes <= 59:
        raise InvalidInputError(f"Minute out of range in '{value}'")

    if period == "AM" and hours == 12:
        hours = 0
    elif period == "PM" and hours != 12:
        hours += 12

    return hours * 60 + minutes


def normalize_day(value: str) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(f"Day must be a string, got {type(value).__name__}")
    key = value.strip().lower()
    if key in DAY_CODES:
        return key
    if key in _DAY_ALIASES:
        return _DAY_ALIASES[key]
    raise InvalidInputError(f"Unknown day '{value}'")


def normalize_days(values: Iterable[str]) -> FrozenSet[str]:
    if isinstance(values, str):
        raise InvalidInputError("Days must be a collection of day names, not a single string")
    return frozenset(normalize_day(v) for v in values)


def time_match(t1: str, t2: str, window_min: int = DEFAULT_TIME_WINDOW_MIN) -> bool:
    """True when the two departure times are at most window_min minutes apart"""
    return minutes_match(parse_time(t1), parse_time(t2), window_min)


def minutes_match(minutes1: int, minutes2: int, window_min: int = DEFAULT_TIME_WINDOW_MIN) -> bool:
    # No wrap-around: 11:50 PM and 12:10 AM are 1420 minutes apart
    return abs(minutes1 - minutes2) <= window_min


def day_match(days1: Iterable[str], days2: Iterable[str]) -> bool:
    """True when the two day sets share at least one day"""
    return bool(normalize_days(days1) & normalize_days(days2))
