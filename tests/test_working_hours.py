from datetime import date, datetime, time

import pytest
from pydantic import ValidationError

from clinic.core.errors import InvalidArgument
from clinic.scheduling.working_hours import (
    DEFAULT_WORKING_HOURS,
    DaySchedule,
    WorkingHours,
    load_working_hours,
)
from clinic.services.user_service import parse_working_hours


def test_default_hours_cover_weekdays_only():
    assert DEFAULT_WORKING_HOURS.for_weekday(0) == DaySchedule(
        start=time(9), end=time(18), break_start=time(13), break_end=time(14)
    )
    assert DEFAULT_WORKING_HOURS.for_weekday(5) is None
    assert DEFAULT_WORKING_HOURS.for_weekday(6) is None


def test_missing_configuration_uses_default():
    assert load_working_hours(None) == DEFAULT_WORKING_HOURS


def test_empty_configuration_means_no_working_days():
    hours = load_working_hours({})
    assert hours != DEFAULT_WORKING_HOURS
    assert all(hours.for_weekday(weekday) is None for weekday in range(7))
    assert hours.to_json() == {}


def test_camel_case_break_keys_are_accepted():
    hours = WorkingHours.model_validate(
        {"tuesday": {"start": "08:00", "end": "12:00", "breakStart": "10:00", "breakEnd": "10:15"}}
    )
    day = hours.for_weekday(1)
    assert day.break_start == time(10) and day.break_end == time(10, 15)
    assert hours.for_weekday(0) is None


def test_round_trip_through_json_column():
    hours = WorkingHours(saturday=DaySchedule(start=time(10), end=time(14)))
    stored = hours.to_json()
    assert stored == {"saturday": {"start": "10:00:00", "end": "14:00:00"}}
    assert load_working_hours(stored) == hours


def test_windows_for_a_day():
    day = DaySchedule(start=time(9), end=time(18), break_start=time(13), break_end=time(14))
    d = date(2030, 1, 7)
    assert day.window(d).start == datetime(2030, 1, 7, 9)
    assert day.break_window(d).end == datetime(2030, 1, 7, 14)
    assert DaySchedule(start=time(9), end=time(12)).break_window(d) is None


@pytest.mark.parametrize(
    "raw",
    [
        {"start": "18:00", "end": "09:00"},
        {"start": "09:00", "end": "09:00"},
        {"start": "09:00", "end": "18:00", "break_start": "13:00"},
        {"start": "09:00", "end": "18:00", "break_start": "14:00", "break_end": "13:00"},
        {"start": "09:00", "end": "18:00", "break_start": "08:00", "break_end": "10:00"},
    ],
)
def test_invalid_day_schedules(raw):
    with pytest.raises(ValidationError):
        DaySchedule.model_validate(raw)


def test_unknown_weekday_rejected():
    with pytest.raises(ValidationError):
        WorkingHours.model_validate({"funday": {"start": "09:00", "end": "10:00"}})


def test_parse_working_hours_reports_invalid_argument():
    with pytest.raises(InvalidArgument) as exc:
        parse_working_hours({"monday": {"start": "18:00", "end": "09:00"}})
    assert "monday" in exc.value.message
