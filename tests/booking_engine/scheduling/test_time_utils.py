from datetime import date, time

import pytest

from booking_engine.core.exceptions import FormatError
from booking_engine.scheduling.time_utils import (
    format_time,
    minutes_of,
    overlaps,
    parse_time,
    time_of,
    to_minutes,
    to_time_string,
    weekday_of,
)


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('00:00', 0),
        ('09:30', 570),
        ('23:59', 1439),
        (' 12:15 ', 735),
    ],
)
def test_to_minutes_parses_valid_times(value: str, expected: int) -> None:
    assert to_minutes(value) == expected


@pytest.mark.parametrize('value', ['24:00', '9:30', '09:60', '0930', '', 'noon', '09:30:00'])
def test_to_minutes_rejects_malformed_times(value: str) -> None:
    with pytest.raises(FormatError):
        to_minutes(value)


def test_to_minutes_rejects_non_string_input() -> None:
    with pytest.raises(FormatError):
        to_minutes(570)


def test_to_time_string_zero_pads() -> None:
    assert to_time_string(0) == '00:00'
    assert to_time_string(545) == '09:05'
    assert to_time_string(1439) == '23:59'


@pytest.mark.parametrize('minutes', [-1, 1440])
def test_to_time_string_rejects_minutes_outside_a_day(minutes: int) -> None:
    with pytest.raises(FormatError):
        to_time_string(minutes)


def test_time_round_trip_through_time_objects() -> None:
    assert minutes_of(time(14, 45)) == 885
    assert time_of(885) == time(14, 45)
    assert parse_time('07:05') == time(7, 5)
    assert format_time(time(7, 5)) == '07:05'


def test_overlaps_is_half_open() -> None:
    assert overlaps(540, 600, 570, 630)
    assert overlaps(540, 600, 540, 600)
    assert not overlaps(540, 600, 600, 660)
    assert not overlaps(600, 660, 540, 600)


def test_overlaps_is_symmetric() -> None:
    assert overlaps(540, 600, 560, 580) == overlaps(560, 580, 540, 600)
    assert overlaps(540, 600, 300, 400) == overlaps(300, 400, 540, 600)


def test_zero_length_interval_overlaps_nothing() -> None:
    assert not overlaps(570, 570, 540, 600)
    assert not overlaps(540, 600, 570, 570)


def test_weekday_of_counts_from_sunday() -> None:
    assert weekday_of(date(2026, 1, 4)) == 0
    assert weekday_of(date(2026, 1, 5)) == 1
    assert weekday_of(date(2026, 1, 10)) == 6
