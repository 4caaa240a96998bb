"""
Weekly grid: the in-memory shift/absence assignment of one person for one
displayed week (Monday..Sunday).

The grid never talks to the store. Callers fetch records and hand them to
select_person()/load(); the save protocol works on a snapshot().
"""
import logging
from datetime import date, timedelta, tzinfo
from typing import Iterable, NamedTuple, Optional, Union

from .catalog import Assignment, display_label, is_absence, parse_assignment
from .models import ShiftRecord
from .timerange import local_day, week_days, week_start_of

_logger = logging.getLogger(__name__)

_WEEKDAY_NAMES = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]


class GridSnapshot(NamedTuple):
    """Immutable copy of a grid, taken when a save starts."""
    person_id: Optional[int]
    week_start: date
    assignments: tuple[tuple[date, Assignment], ...]


class WeeklyGrid:
    def __init__(self, week_of: date, tz: tzinfo):
        self.tz = tz
        self.week_start = week_start_of(week_of)
        self.person_id: Optional[int] = None
        self._entries: dict[date, Optional[Assignment]] = {}
        self._saved: dict[date, Optional[Assignment]] = {}
        self._reset()

    def _reset(self) -> None:
        self._entries = {d: None for d in self.days}
        self._saved = dict(self._entries)

    @property
    def days(self) -> list[date]:
        return week_days(self.week_start)

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=6)

    def contains(self, day: date) -> bool:
        return self.week_start <= day <= self.week_end

    # ── Operations ─────────────────────────────────────────────
    def select_person(self, person_id: int, records: Iterable[ShiftRecord]) -> int:
        """Switch to `person_id` and project their records for this week.

        Returns the number of unsaved edits that were discarded.
        """
        discarded = len(self.unsaved_days())
        self.person_id = person_id
        self._reset()
        self.load(records)
        return discarded

    def load(self, records: Iterable[ShiftRecord]) -> None:
        """Replace the grid with the persisted state found in `records`.

        Records of other people or outside the week are skipped. If a day has
        more than one record the first one wins.
        """
        self._reset()
        if self.person_id is None:
            return
        for rec in records:
            if rec.user_id != self.person_id:
                continue
            day = local_day(rec.start_time, self.tz)
            if not self.contains(day):
                continue
            if self._saved[day] is not None:
                _logger.debug(
                    "ignoring extra record id=%s for user=%s day=%s",
                    rec.id, rec.user_id, day.isoformat(),
                )
                continue
            value = rec.assignment
            if value is None:
                continue
            self._saved[day] = value
            self._entries[day] = value

    def refresh(self, records: Iterable[ShiftRecord]) -> None:
        """Like load(), but unsaved edits survive on top of the new persisted state."""
        pending = {d: self._entries[d] for d in self.unsaved_days()}
        self.load(records)
        self._entries.update(pending)

    def set_day(self, day: date, value: Union[Assignment, str, None]) -> None:
        if not self.contains(day):
            raise ValueError(f"{day.isoformat()} is outside the week of {self.week_start.isoformat()}")
        self._entries[day] = None if value is None else parse_assignment(value)

    def navigate_week(self, direction: Union[int, str]) -> int:
        """Move one week back (-1 / 'prev') or forward (+1 / 'next').

        The grid is cleared unconditionally; returns how many unsaved edits
        were dropped.
        """
        if direction in ("prev", -1):
            step = -7
        elif direction in ("next", 1):
            step = 7
        else:
            raise ValueError(f"invalid direction: {direction!r}")
        discarded = len(self.unsaved_days())
        self.week_start = self.week_start + timedelta(days=step)
        self._reset()
        return discarded

    def clear_week(self) -> None:
        for d in self._entries:
            self._entries[d] = None

    # ── Queries ────────────────────────────────────────────────
    def value(self, day: date) -> Optional[Assignment]:
        return self._entries.get(day)

    def assignments(self) -> list[tuple[date, Assignment]]:
        return [(d, v) for d, v in self._entries.items() if v is not None]

    def unsaved_days(self) -> list[date]:
        return [d for d in self.days if self._entries[d] != self._saved[d]]

    def has_unsaved_changes(self) -> bool:
        return bool(self.unsaved_days())

    def snapshot(self) -> GridSnapshot:
        return GridSnapshot(self.person_id, self.week_start, tuple(self.assignments()))

    def to_dict(self) -> dict:
        days = []
        for i, d in enumerate(self.days):
            value = self._entries[d]
            saved = self._saved[d]
            days.append({
                "date": d.isoformat(),
                "weekday": _WEEKDAY_NAMES[i],
                "value": value.value if value is not None else None,
                "kind": None if value is None else ("absence" if is_absence(value) else "shift"),
                "label": display_label(value) if value is not None else None,
                "saved_value": saved.value if saved is not None else None,
                "unsaved": value != saved,
            })
        return {
            "person_id": self.person_id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "days": days,
            "unsaved_count": sum(1 for x in days if x["unsaved"]),
        }
