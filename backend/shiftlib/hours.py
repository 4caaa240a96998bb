"""Hours summary over a set of working shifts (night, Sunday, holiday hours)."""
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable

from .catalog import ShiftStatus
from .models import ShiftRecord

# Colombian public holidays 2025, used when SHIFT_HOLIDAYS is not configured
DEFAULT_HOLIDAYS = [
    '2025-01-01', '2025-01-06', '2025-03-24', '2025-04-17', '2025-04-18',
    '2025-05-01', '2025-06-02', '2025-06-23', '2025-07-03', '2025-07-20',
    '2025-08-07', '2025-08-18', '2025-10-13', '2025-11-03', '2025-11-17',
    '2025-12-08', '2025-12-25',
]

REGULAR_SHIFT_HOURS = 8
NIGHT_START = 22
NIGHT_END = 6


def parse_holidays(raw: str) -> set[date]:
    """Parse a comma separated list of ISO dates; blanks are ignored."""
    return {date.fromisoformat(p.strip()) for p in raw.split(',') if p.strip()}


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _overlap(a0: datetime, a1: datetime, b0: datetime, b1: datetime) -> float:
    lo = max(a0, b0)
    hi = min(a1, b1)
    return _hours(hi - lo) if hi > lo else 0.0


def _local_midnight(day: date, tz: tzinfo) -> datetime:
    return _utc(datetime.combine(day, time.min, tzinfo=tz))


def _span_days(start: datetime, end: datetime, tz: tzinfo) -> list[date]:
    first = start.astimezone(tz).date() - timedelta(days=1)
    last = end.astimezone(tz).date()
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def _night_hours(start: datetime, end: datetime, tz: tzinfo) -> float:
    total = 0.0
    for d in _span_days(start, end, tz):
        w0 = _utc(datetime.combine(d, time(NIGHT_START), tzinfo=tz))
        w1 = _utc(datetime.combine(d + timedelta(days=1), time(NIGHT_END), tzinfo=tz))
        total += _overlap(start, end, w0, w1)
    return total


def _day_hours(start: datetime, end: datetime, tz: tzinfo, wanted) -> float:
    total = 0.0
    for d in _span_days(start, end, tz):
        if wanted(d):
            total += _overlap(start, end, _local_midnight(d, tz), _local_midnight(d + timedelta(days=1), tz))
    return total


def summarize_hours(shifts: Iterable[ShiftRecord], holidays: Iterable[date], tz: tzinfo) -> dict:
    """Aggregate worked hours. Absences are not working time and are skipped."""
    holiday_set = set(holidays)
    count = 0
    total = overtime = night = sunday = holiday = 0.0
    for s in shifts:
        if s.status == ShiftStatus.ABSENCE.value or s.absence_type:
            continue
        start, end = _utc(s.start_time), _utc(s.end_time)
        if end <= start:
            continue
        count += 1
        duration = _hours(end - start)
        total += duration
        if duration > REGULAR_SHIFT_HOURS:
            overtime += duration - REGULAR_SHIFT_HOURS
        night += _night_hours(start, end, tz)
        sunday += _day_hours(start, end, tz, lambda d: d.weekday() == 6)
        holiday += _day_hours(start, end, tz, lambda d: d in holiday_set)
    return {
        "totalShifts": count,
        "totalHours": round(total, 2),
        "overtimeHours": round(overtime, 2),
        "nightHours": round(night, 2),
        "sundayHours": round(sunday, 2),
        "holidayHours": round(holiday, 2),
        "averageHoursPerShift": round(total / count, 2) if count else 0,
    }
