"""Tests for the worked hours summary."""
from datetime import date

import pytest

from shiftlib.hours import DEFAULT_HOLIDAYS, parse_holidays, summarize_hours
from shiftlib.models import ShiftRecord
from conftest import TZ, shift_row


def _records(*rows):
    return [ShiftRecord.model_validate(r) for r in rows]


class TestSummary:
    def test_empty(self):
        summary = summarize_hours([], set(), TZ)
        assert summary["totalShifts"] == 0
        assert summary["averageHoursPerShift"] == 0

    def test_night_shift_split(self):
        # Tuesday 18:00 -> Wednesday 06:00: 8 of the 12 hours fall in 22:00-06:00
        summary = summarize_hours(_records(
            shift_row(1, 7, "2025-05-06T18:00:00-05:00", "2025-05-07T06:00:00-05:00", "night_12h"),
        ), set(), TZ)
        assert summary["totalHours"] == 12
        assert summary["nightHours"] == 8
        assert summary["overtimeHours"] == 4
        assert summary["sundayHours"] == 0

    def test_afternoon_shift_has_no_night_hours(self):
        summary = summarize_hours(_records(
            shift_row(1, 7, "2025-05-06T14:00:00-05:00", "2025-05-06T22:00:00-05:00", "afternoon_8h"),
        ), set(), TZ)
        assert summary["nightHours"] == 0
        assert summary["overtimeHours"] == 0

    def test_sunday_night_into_monday(self):
        # Sunday 18:00 -> Monday 06:00: 6 hours on Sunday
        summary = summarize_hours(_records(
            shift_row(1, 7, "2025-05-11T18:00:00-05:00", "2025-05-12T06:00:00-05:00", "night_12h"),
        ), set(), TZ)
        assert summary["sundayHours"] == 6

    def test_holiday_hours(self):
        summary = summarize_hours(_records(
            shift_row(1, 7, "2025-05-01T06:00:00-05:00", "2025-05-01T18:00:00-05:00", "morning_12h"),
            shift_row(2, 7, "2025-05-02T06:00:00-05:00", "2025-05-02T14:00:00-05:00", "morning_8h"),
        ), {date(2025, 5, 1)}, TZ)
        assert summary["holidayHours"] == 12
        assert summary["totalShifts"] == 2
        assert summary["averageHoursPerShift"] == 10

    def test_absences_not_counted(self):
        summary = summarize_hours(_records(
            shift_row(1, 7, "2025-05-07T00:00:00-05:00", "2025-05-07T23:59:59-05:00", absence_type="vacation"),
            shift_row(2, 7, "2025-05-08T06:00:00-05:00", "2025-05-08T14:00:00-05:00", "morning_8h"),
        ), set(), TZ)
        assert summary["totalShifts"] == 1
        assert summary["totalHours"] == 8


class TestHolidays:
    def test_parse(self):
        assert parse_holidays("2025-01-01, 2025-12-25,") == {date(2025, 1, 1), date(2025, 12, 25)}

    def test_default_list_parses(self):
        assert date(2025, 7, 20) in parse_holidays(",".join(DEFAULT_HOLIDAYS))

    def test_bad_date(self):
        with pytest.raises(ValueError):
            parse_holidays("2025-13-01")
