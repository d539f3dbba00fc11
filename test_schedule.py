"""Schedule evaluation: time parsing, time windows, day overlap."""

import pytest

from ridematch.modules.errors import InvalidInputError
from ridematch.modules.models import ScheduleSpec
from ridematch.modules.schedule import day_match, normalize_days, parse_time, time_match


@pytest.mark.parametrize("value,expected", [
    ("12:00 AM", 0),
    ("12:15 AM", 15),
    ("1:05 AM", 65),
    ("7:30 AM", 450),
    ("12:00 PM", 720),
    ("12:30 PM", 750),
    ("1:00 PM", 780),
    ("11:59 PM", 1439),
    ("7:30 am", 450),
    (" 07:30 PM ", 1170),
    ("7:30PM", 1170),
])
def test_parse_time(value, expected):
    assert parse_time(value) == expected


@pytest.mark.parametrize("value", ["7:30", "13:00 PM", "0:30 AM", "7:60 AM", "", "seven thirty", "7.30 AM", None])
def test_parse_time_rejects_malformed_values(value):
    with pytest.raises(InvalidInputError):
        parse_time(value)


def test_time_match_window_is_inclusive():
    assert time_match("7:30 AM", "8:00 AM")
    assert time_match("8:00 AM", "7:30 AM")
    assert not time_match("7:30 AM", "8:01 AM")
    assert time_match("7:30 AM", "8:15 AM", window_min=45)


def test_time_match_does_not_wrap_midnight():
    assert not time_match("11:50 PM", "12:10 AM")


def test_time_match_raises_instead_of_returning_false():
    with pytest.raises(InvalidInputError):
        time_match("7:30 AM", "half past seven")


def test_day_match():
    assert day_match(["mon", "wed"], ["wed", "fri"])
    assert not day_match(["sat", "sun"], ["mon", "tue"])
    assert not day_match([], ["mon"])


def test_day_names_are_normalized():
    assert normalize_days(["Monday", "TUE", "thursday", "sun"]) == frozenset({"mon", "tue", "thu", "sun"})
    assert day_match(["monday"], ["Mon"])


def test_unknown_day_is_rejected():
    with pytest.raises(InvalidInputError):
        normalize_days(["funday"])
    with pytest.raises(InvalidInputError):
        normalize_days("monday")


def test_schedule_spec_parses_on_construction():
    schedule = ScheduleSpec(days=["monday", "friday"], time="5:45 PM")
    assert schedule.minutes == 17 * 60 + 45
    assert schedule.days == frozenset({"mon", "fri"})

    with pytest.raises(InvalidInputError):
        ScheduleSpec(days=["monday"], time="25:00")
