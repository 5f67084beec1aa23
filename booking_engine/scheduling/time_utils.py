"""Minute arithmetic for wall-clock times and half-open intervals."""

import re
from datetime import date, time

from booking_engine.core.exceptions import FormatError

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r'^([01][0-9]|2[0-3]):([0-5][0-9])$')


def to_minutes(value: str) -> int:
    if not isinstance(value, str):
        raise FormatError(f'Invalid time {value!r}. Use HH:MM.', details={'value': repr(value)})

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise FormatError(f'Invalid time {value!r}. Use HH:MM between 00:00 and 23:59.', details={'value': value})

    return int(match.group(1)) * 60 + int(match.group(2))


def to_time_string(minutes: int) -> str:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise FormatError(f'{minutes} minutes is outside a single day.', details={'minutes': minutes})

    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open: [start, end). A zero-length interval overlaps nothing.
    if start_a >= end_a or start_b >= end_b:
        return False
    return start_a < end_b and start_b < end_a


def minutes_of(value: time) -> int:
    return value.hour * 60 + value.minute


def time_of(minutes: int) -> time:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise FormatError(f'{minutes} minutes is outside a single day.', details={'minutes': minutes})
    return time(minutes // 60, minutes % 60)


def parse_time(value: str) -> time:
    return time_of(to_minutes(value))


def format_time(value: time) -> str:
    return to_time_string(minutes_of(value))


def weekday_of(value: date) -> int:
    """Day of week with 0 = Sunday through 6 = Saturday."""
    return (value.weekday() + 1) % 7
