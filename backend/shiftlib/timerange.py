"""Date and time helpers for the weekly planner.

All derived timestamps are timezone-aware and expressed in the planner's
local zone.
"""
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from .catalog import Assignment, ShiftType, hours_for, is_absence, overnight


DEFAULT_TIMEZONE = "America/Bogota"

_DAY_END = time(23, 59, 59)


def get_zone(name: Optional[str] = None) -> tzinfo:
    return ZoneInfo(name or DEFAULT_TIMEZONE)


def _at(day: date, hour: int, tz: tzinfo) -> datetime:
    return datetime.combine(day, time(hour, 0, 0), tzinfo=tz)


def time_range_for(shift_type: ShiftType, day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Absolute start/end of a working shift that starts on `day`.

    Overnight shifts (night_12h) end on the following calendar day.
    """
    start_hour, end_hour = hours_for(shift_type)
    start = _at(day, start_hour, tz)
    end_day = day + timedelta(days=1) if overnight(shift_type) else day
    end = _at(end_day, end_hour, tz)
    return start, end


def absence_range(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    return (
        datetime.combine(day, time(0, 0, 0), tzinfo=tz),
        datetime.combine(day, _DAY_END, tzinfo=tz),
    )


def range_for(value: Assignment, day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    if is_absence(value):
        return absence_range(day, tz)
    return time_range_for(value, day, tz)


# ── Week arithmetic ─────────────────────────────────────────────

def week_start_of(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


def week_days(week_start: date) -> list[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def week_bounds(week_start: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Monday 00:00 to Sunday 23:59:59.999999, local time."""
    start = datetime.combine(week_start, time.min, tzinfo=tz)
    end = datetime.combine(week_start + timedelta(days=6), time.max, tzinfo=tz)
    return start, end


def local_day(ts: datetime, tz: tzinfo) -> date:
    """Calendar day of `ts` in the planner zone. Naive values are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=ZoneInfo("UTC"))
    return ts.astimezone(tz).date()
