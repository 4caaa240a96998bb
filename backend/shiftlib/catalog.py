"""
Shift and absence type catalogue.

Working shifts carry a fixed start/end hour; absences always span the whole
day. Labels are the Spanish strings shown in the scheduling view and in the
spreadsheet exports.
"""
from enum import Enum
from typing import Union


class ShiftType(str, Enum):
    MORNING_8H = "morning_8h"
    AFTERNOON_8H = "afternoon_8h"
    NIGHT_12H = "night_12h"
    MORNING_12H = "morning_12h"


class AbsenceType(str, Enum):
    VACATION = "vacation"
    SICK_LEAVE = "sick_leave"
    REST = "rest"
    PERMISSION = "permission"
    SUSPENSION = "suspension"


class ShiftStatus(str, Enum):
    SCHEDULED = "scheduled"
    ABSENCE = "absence"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


Assignment = Union[ShiftType, AbsenceType]

# (start_hour, end_hour); an end hour <= start hour means the next day
_SHIFT_HOURS: dict[ShiftType, tuple[int, int]] = {
    ShiftType.MORNING_8H: (6, 14),
    ShiftType.AFTERNOON_8H: (14, 22),
    ShiftType.NIGHT_12H: (18, 6),
    ShiftType.MORNING_12H: (6, 18),
}

_LABELS: dict[str, str] = {
    ShiftType.MORNING_8H: "Mañana",
    ShiftType.AFTERNOON_8H: "Tarde",
    ShiftType.NIGHT_12H: "Noche",
    ShiftType.MORNING_12H: "Día",
    AbsenceType.VACATION: "Vacaciones",
    AbsenceType.SICK_LEAVE: "Enfermedad",
    AbsenceType.REST: "Descanso",
    AbsenceType.PERMISSION: "Permiso",
    AbsenceType.SUSPENSION: "Suspensión",
}


def parse_assignment(value: str) -> Assignment:
    """Map a wire string onto ShiftType or AbsenceType.

    Raises ValueError for anything outside the two enums.
    """
    if isinstance(value, (ShiftType, AbsenceType)):
        return value
    try:
        return ShiftType(value)
    except ValueError:
        pass
    try:
        return AbsenceType(value)
    except ValueError:
        raise ValueError(f"unknown shift or absence type: {value!r}")


def is_absence(value: Assignment) -> bool:
    return isinstance(value, AbsenceType)


def hours_for(shift_type: ShiftType) -> tuple[int, int]:
    return _SHIFT_HOURS[shift_type]


def overnight(shift_type: ShiftType) -> bool:
    start, end = _SHIFT_HOURS[shift_type]
    return end <= start


def display_label(value: Assignment) -> str:
    return _LABELS[value]


def report_label(value: Assignment) -> str:
    """Label with the hour range, e.g. 'Noche (18:00-06:00)'."""
    if is_absence(value):
        return _LABELS[value]
    start, end = _SHIFT_HOURS[value]
    return f"{_LABELS[value]} ({start:02d}:00-{end:02d}:00)"


def catalogue() -> list[dict]:
    """All assignable types, working shifts first, in picker order."""
    result = []
    for st in ShiftType:
        start, end = _SHIFT_HOURS[st]
        result.append({
            "value": st.value,
            "kind": "shift",
            "label": _LABELS[st],
            "report_label": report_label(st),
            "start_hour": start,
            "end_hour": end,
            "overnight": end <= start,
        })
    for at in AbsenceType:
        result.append({
            "value": at.value,
            "kind": "absence",
            "label": _LABELS[at],
            "report_label": _LABELS[at],
            "start_hour": None,
            "end_hour": None,
            "overnight": False,
        })
    return result
