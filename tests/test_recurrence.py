from datetime import datetime, timedelta

import pytest

from datamodel import Custom, Daily, Reminder, Specific, UnknownRecurrence, Weekly
from world.recurrence import FALLBACK_DELAY, compute_next, parse_time_of_day

NOW = datetime(2024, 3, 1, 10, 15, 42, 123456)


def test_daily_is_24h_later_with_seconds_zeroed():
    assert compute_next(Daily(), NOW) == datetime(2024, 3, 2, 10, 15, 0)


def test_weekly_keeps_full_precision():
    assert compute_next(Weekly(), NOW) == NOW + timedelta(days=7)


def test_custom_adds_interval_hours():
    assert compute_next(Custom(interval_hours=6), NOW) == NOW + timedelta(hours=6)


@pytest.mark.parametrize("interval", [0, -3])
def test_custom_non_positive_interval_falls_back(interval):
    assert compute_next(Custom(interval_hours=interval), NOW) == NOW + FALLBACK_DELAY


def test_specific_later_today():
    assert compute_next(Specific("18:30"), NOW) == datetime(2024, 3, 1, 18, 30)


def test_specific_already_passed_moves_to_tomorrow():
    assert compute_next(Specific("09:00"), NOW) == datetime(2024, 3, 2, 9, 0)


def test_specific_exactly_now_moves_to_tomorrow():
    now = datetime(2024, 3, 1, 8, 0, 0)
    assert compute_next(Specific("08:00"), now) == datetime(2024, 3, 2, 8, 0)


def test_specific_rolls_over_month_end():
    now = datetime(2024, 2, 29, 23, 0)
    assert compute_next(Specific("07:00"), now) == datetime(2024, 3, 1, 7, 0)


@pytest.mark.parametrize("value", ["", "abc", "25:00", "12:61", "8:5", "08:5", "123:00"])
def test_specific_unparseable_falls_back(value):
    assert compute_next(Specific(value), NOW) == NOW + FALLBACK_DELAY


def test_unknown_recurrence_falls_back():
    assert compute_next(UnknownRecurrence(raw_kind="monthly"), NOW) == NOW + FALLBACK_DELAY


def test_accepts_reminder():
    reminder = Reminder(reminder_id=1, user_id=1, title="降压药", recurrence=Custom(interval_hours=2))
    assert compute_next(reminder, NOW) == NOW + timedelta(hours=2)


@pytest.mark.parametrize(
    "recurrence",
    [Daily(), Weekly(), Custom(1), Custom(0), Specific("00:00"), Specific("23:59"), Specific("x"), UnknownRecurrence("?")],
)
def test_result_is_always_in_the_future(recurrence):
    assert compute_next(recurrence, NOW) > NOW


def test_parse_time_of_day():
    assert parse_time_of_day("8:05") == (8, 5)
    assert parse_time_of_day(" 23:59 ") == (23, 59)
    assert parse_time_of_day("24:00") is None
    assert parse_time_of_day("8:5") is None
    assert parse_time_of_day("08:005") is None
    assert parse_time_of_day(None) is None
