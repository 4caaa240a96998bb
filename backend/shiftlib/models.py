"""Wire models for the remote shift store.

The store speaks camelCase JSON; the models accept both the wire names and
the Python field names and always dump with the wire names.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .catalog import (
    AbsenceType, Assignment, ShiftStatus, ShiftType, parse_assignment,
)

# Raw rows from store endpoints that are only aggregated, never edited
AssignmentRow = dict[str, Any]
AlarmRow = dict[str, Any]
ClientRow = dict[str, Any]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ShiftPayload(_WireModel):
    """Body of POST /api/shifts."""
    user_id: int = Field(..., alias="userId", gt=0)
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    status: ShiftStatus
    shift_type: Optional[ShiftType] = Field(None, alias="shiftType")
    absence_type: Optional[AbsenceType] = Field(None, alias="absenceType")
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_kind(self) -> "ShiftPayload":
        if (self.shift_type is None) == (self.absence_type is None):
            raise ValueError("exactly one of shiftType and absenceType must be set")
        if self.absence_type is not None and self.status != ShiftStatus.ABSENCE:
            raise ValueError("absence payloads must have status 'absence'")
        if self.shift_type is not None and self.status != ShiftStatus.SCHEDULED:
            raise ValueError("shift payloads must have status 'scheduled'")
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self

    @classmethod
    def build(cls, user_id: int, value: Assignment, start: datetime, end: datetime) -> "ShiftPayload":
        absence = isinstance(value, AbsenceType)
        return cls(
            user_id=user_id,
            start_time=start,
            end_time=end,
            status=ShiftStatus.ABSENCE if absence else ShiftStatus.SCHEDULED,
            shift_type=None if absence else value,
            absence_type=value if absence else None,
            notes=None,
        )


class ShiftRecord(_WireModel):
    """A persisted shift or absence as returned by the store.

    Type fields stay plain strings on read so that one unexpected value from
    the backend does not make a whole listing unreadable.
    """
    id: Optional[int] = None
    user_id: int = Field(..., alias="userId")
    start_time: datetime = Field(..., alias="startTime")
    end_time: datetime = Field(..., alias="endTime")
    status: str = ShiftStatus.SCHEDULED.value
    shift_type: Optional[str] = Field(None, alias="shiftType")
    absence_type: Optional[str] = Field(None, alias="absenceType")
    notes: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    created_by: Optional[int] = Field(None, alias="createdBy")

    @property
    def assignment(self) -> Optional[Assignment]:
        """Grid value of this record, or None if it has no known type."""
        raw = None
        if self.status == ShiftStatus.ABSENCE.value and self.absence_type:
            raw = self.absence_type
        elif self.shift_type:
            raw = self.shift_type
        if raw is None:
            return None
        try:
            return parse_assignment(raw)
        except ValueError:
            return None


class Person(_WireModel):
    """Roster entry from /api/users/by-role/{role}."""
    id: int
    username: str
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    role: Optional[str] = None
    identification_number: Optional[str] = Field(None, alias="identificationNumber")
    whatsapp_number: Optional[str] = Field(None, alias="whatsappNumber")
    motorcycle_plate: Optional[str] = Field(None, alias="motorcyclePlate")

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username
