"""Tests for the shift/absence catalogue and the time range deriver."""
from datetime import date, datetime, timedelta

import pytest

from shiftlib.catalog import (
    AbsenceType, ShiftType, catalogue, display_label, hours_for, is_absence,
    parse_assignment, report_label,
)
from shiftlib.timerange import (
    absence_range, local_day, range_for, time_range_for, week_bounds,
    week_days, week_start_of,
)
from conftest import TZ

MONDAY = date(2025, 5, 5)


class TestParseAssignment:
    def test_shift_values(self):
        assert parse_assignment("morning_8h") is ShiftType.MORNING_8H
        assert parse_assignment("night_12h") is ShiftType.NIGHT_12H

    def test_absence_values(self):
        assert parse_assignment("sick_leave") is AbsenceType.SICK_LEAVE
        assert is_absence(parse_assignment("vacation"))

    def test_enum_passthrough(self):
        assert parse_assignment(AbsenceType.REST) is AbsenceType.REST

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            parse_assignment("evening_6h")


class TestLabels:
    def test_display_labels_are_spanish(self):
        assert display_label(ShiftType.MORNING_12H) == "Día"
        assert display_label(AbsenceType.SUSPENSION) == "Suspensión"

    def test_report_label_carries_hours(self):
        assert report_label(ShiftType.NIGHT_12H) == "Noche (18:00-06:00)"
        assert report_label(AbsenceType.VACATION) == "Vacaciones"

    def test_catalogue_lists_every_type_once(self):
        values = [e["value"] for e in catalogue()]
        assert len(values) == len(ShiftType) + len(AbsenceType)
        assert len(set(values)) == len(values)
        night = next(e for e in catalogue() if e["value"] == "night_12h")
        assert night["overnight"] is True
        assert night["kind"] == "shift"


class TestTimeRange:
    @pytest.mark.parametrize("shift_type", list(ShiftType))
    def test_start_before_end(self, shift_type):
        start, end = time_range_for(shift_type, MONDAY, TZ)
        assert start < end
        assert start.date() == MONDAY
        assert start.hour == hours_for(shift_type)[0]

    def test_night_shift_ends_next_day(self):
        start, end = time_range_for(ShiftType.NIGHT_12H, MONDAY + timedelta(days=1), TZ)
        assert start == datetime(2025, 5, 6, 18, 0, tzinfo=TZ)
        assert end == datetime(2025, 5, 7, 6, 0, tzinfo=TZ)
        assert end.date() == start.date() + timedelta(days=1)

    def test_day_shift_is_twelve_hours(self):
        start, end = time_range_for(ShiftType.MORNING_12H, MONDAY, TZ)
        assert end - start == timedelta(hours=12)

    def test_absence_spans_whole_day(self):
        start, end = absence_range(MONDAY, TZ)
        assert (start.hour, start.minute, start.second) == (0, 0, 0)
        assert (end.hour, end.minute, end.second) == (23, 59, 59)
        assert start.date() == end.date() == MONDAY

    def test_range_for_dispatches_on_kind(self):
        assert range_for(AbsenceType.REST, MONDAY, TZ) == absence_range(MONDAY, TZ)
        assert range_for(ShiftType.AFTERNOON_8H, MONDAY, TZ) == time_range_for(ShiftType.AFTERNOON_8H, MONDAY, TZ)


class TestWeekHelpers:
    def test_week_starts_on_monday(self):
        assert week_start_of(date(2025, 5, 11)) == MONDAY  # Sunday
        assert week_start_of(MONDAY) == MONDAY

    def test_week_days(self):
        days = week_days(MONDAY)
        assert len(days) == 7
        assert days[-1] == date(2025, 5, 11)

    def test_week_bounds_cover_sunday_evening(self):
        start, end = week_bounds(MONDAY, TZ)
        assert start == datetime(2025, 5, 5, 0, 0, tzinfo=TZ)
        assert end.date() == date(2025, 5, 11)
        assert end > datetime(2025, 5, 11, 23, 59, 59, tzinfo=TZ)

    def test_local_day_converts_from_utc(self):
        # 02:00 UTC on Tuesday is still Monday evening in Bogota (UTC-5)
        assert local_day(datetime.fromisoformat("2025-05-06T02:00:00+00:00"), TZ) == MONDAY

    def test_local_day_naive_is_utc(self):
        assert local_day(datetime(2025, 5, 6, 2, 0), TZ) == MONDAY
