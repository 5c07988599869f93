#!/usr/bin/env python3
"""
Shift-end parsing and the last-hour window used to gate exit detection on
regular shifts.
"""

from datetime import time

import pytest

from conftest import local_time
from utils.shift_time import (
    ShiftTimeError,
    is_in_last_hour_window,
    parse_optional_shift_time,
    parse_shift_time,
)

TZ = "Europe/London"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("17:00", time(17, 0)),
        ("7:05", time(7, 5)),
        ("17:00:00", time(17, 0)),
        (" 09:15 ", time(9, 15)),
        ("5pm", time(17, 0)),
        ("5:30 PM", time(17, 30)),
        ("11:45am", time(11, 45)),
        ("12am", time(0, 0)),
        ("12:30 pm", time(12, 30)),
    ],
)
def test_parse_supported_formats(raw, expected):
    assert parse_shift_time(raw) == expected


@pytest.mark.parametrize("raw", ["25:00", "17:60", "5", "13pm", "0am", "abc", "17.00", "5 o'clock"])
def test_parse_rejects_malformed(raw):
    with pytest.raises(ShiftTimeError):
        parse_shift_time(raw)


def test_seconds_are_checked_then_dropped():
    assert parse_shift_time("17:00:45") == time(17, 0)
    with pytest.raises(ShiftTimeError):
        parse_shift_time("17:00:60")


def test_missing_is_distinct_from_malformed():
    assert parse_optional_shift_time(None) is None
    assert parse_optional_shift_time("   ") is None
    with pytest.raises(ShiftTimeError):
        parse_optional_shift_time("tea time")


def test_window_excludes_time_before_last_hour():
    assert not is_in_last_hour_window(local_time(15, 30), time(17, 0), TZ)
    assert not is_in_last_hour_window(local_time(15, 59), time(17, 0), TZ)


def test_window_includes_last_hour_inclusive():
    assert is_in_last_hour_window(local_time(16, 0), time(17, 0), TZ)
    assert is_in_last_hour_window(local_time(16, 30), time(17, 0), TZ)
    assert is_in_last_hour_window(local_time(17, 0), time(17, 0), TZ)


def test_window_closes_after_shift_end():
    assert not is_in_last_hour_window(local_time(17, 1), time(17, 0), TZ)


def test_window_length_is_configurable():
    assert is_in_last_hour_window(local_time(15, 30), time(17, 0), TZ, window_minutes=90)
