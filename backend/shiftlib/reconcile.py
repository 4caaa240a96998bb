"""
Save protocol: push a weekly grid to the remote shift store.

For every assigned day the stale record(s) of that day are deleted and a new
record is created. Calls are made strictly one after the other; a delete is
always awaited before the create that replaces it. A failing day is recorded
and the loop carries on with the next day.
"""
import logging
from datetime import date, tzinfo
from typing import Optional

from .catalog import Assignment
from .grid import GridSnapshot
from .models import ShiftPayload, ShiftRecord
from .store import HttpError, ShiftStoreClient, StoreError
from .timerange import local_day, range_for, week_bounds, week_start_of

_logger = logging.getLogger(__name__)

FULFILLED = "fulfilled"
REJECTED = "rejected"


class ValidationError(Exception):
    """Raised before any network call when there is nothing valid to save."""


class DayOutcome:
    __slots__ = ("day", "value", "status", "record", "deleted_ids", "error")

    def __init__(self, day: date, value: Assignment):
        self.day = day
        self.value = value
        self.status = REJECTED
        self.record: Optional[ShiftRecord] = None
        self.deleted_ids: list[int] = []
        self.error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "value": self.value.value,
            "status": self.status,
            "record_id": self.record.id if self.record else None,
            "deleted_ids": list(self.deleted_ids),
            "error": self.error,
        }


class SaveResult:
    def __init__(self, person_id: int, week_start: date, person_name: Optional[str] = None):
        self.person_id = person_id
        self.week_start = week_start
        self.person_name = person_name
        self.outcomes: list[DayOutcome] = []

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == FULFILLED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == REJECTED)

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "success"
        if self.succeeded > 0:
            return "partial"
        return "failure"

    @property
    def message(self) -> str:
        if self.status == "success":
            who = f" para {self.person_name}" if self.person_name else ""
            return f"Se han asignado {self.succeeded} turnos{who}"
        if self.status == "partial":
            return f"Se asignaron {self.succeeded} turnos, pero fallaron {self.failed}"
        return "No se pudo guardar ningún turno"

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "week_start": self.week_start.isoformat(),
            "status": self.status,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "message": self.message,
            "days": [o.to_dict() for o in self.outcomes],
        }


async def existing_by_day(
    store: ShiftStoreClient, person_id: int, week_start: date, tz: tzinfo,
) -> dict[date, list[ShiftRecord]]:
    """Persisted records of `person_id` in the week, grouped by local start day.

    The backend is not trusted to honour the query filters, so user and day
    are checked again here.
    """
    start, end = week_bounds(week_start, tz)
    records = await store.list_shifts(start_date=start, end_date=end, user_id=person_id)
    by_day: dict[date, list[ShiftRecord]] = {}
    for rec in records:
        if rec.user_id != person_id:
            continue
        day = local_day(rec.start_time, tz)
        if start.date() <= day <= end.date():
            by_day.setdefault(day, []).append(rec)
    return by_day


async def _replace_day(
    store: ShiftStoreClient,
    person_id: int,
    day: date,
    value: Assignment,
    stale: list[ShiftRecord],
    tz: tzinfo,
) -> DayOutcome:
    outcome = DayOutcome(day, value)
    for rec in stale:
        if rec.id is None:
            continue
        try:
            await store.delete_shift(rec.id)
        except HttpError as e:
            if e.status != 404:
                _logger.warning(
                    "delete of stale shift id=%s day=%s failed, skipping create: %s",
                    rec.id, day.isoformat(), e,
                )
                outcome.error = f"No se pudo eliminar el turno existente {rec.id}: {e.body}"
                return outcome
            _logger.debug("stale shift id=%s already gone", rec.id)
        except StoreError as e:
            _logger.warning(
                "delete of stale shift id=%s day=%s failed, skipping create: %s",
                rec.id, day.isoformat(), e,
            )
            outcome.error = f"No se pudo eliminar el turno existente {rec.id}: {e}"
            return outcome
        outcome.deleted_ids.append(rec.id)

    start, end = range_for(value, day, tz)
    payload = ShiftPayload.build(person_id, value, start, end)
    try:
        outcome.record = await store.create_shift(payload)
    except HttpError as e:
        _logger.warning("create shift day=%s failed: %s", day.isoformat(), e)
        outcome.error = f"Código {e.status}: {e.body}"
        return outcome
    except StoreError as e:
        _logger.warning("create shift day=%s failed: %s", day.isoformat(), e)
        outcome.error = str(e)
        return outcome
    outcome.status = FULFILLED
    return outcome


async def save_week(
    store: ShiftStoreClient,
    snapshot: GridSnapshot,
    tz: tzinfo,
    person_name: Optional[str] = None,
) -> SaveResult:
    """Persist every non-empty day of `snapshot`.

    Raises ValidationError without touching the network when no person is
    selected or the grid is empty. Raises StoreError only if the initial
    listing of existing records fails; per-day failures end up in the result.
    """
    if snapshot.person_id is None:
        raise ValidationError("no person selected")
    if not snapshot.assignments:
        raise ValidationError("nothing to save")

    existing = await existing_by_day(store, snapshot.person_id, snapshot.week_start, tz)
    result = SaveResult(snapshot.person_id, snapshot.week_start, person_name)
    for day, value in snapshot.assignments:
        outcome = await _replace_day(
            store, snapshot.person_id, day, value, existing.get(day, []), tz,
        )
        result.outcomes.append(outcome)

    _logger.info(
        "save week=%s user=%s status=%s ok=%d failed=%d",
        snapshot.week_start.isoformat(), snapshot.person_id,
        result.status, result.succeeded, result.failed,
    )
    return result


async def delete_day(store: ShiftStoreClient, person_id: int, day: date, tz: tzinfo) -> list[int]:
    """Delete every persisted record of `person_id` starting on `day`.

    Store errors propagate to the caller. Returns the deleted ids.
    """
    existing = await existing_by_day(store, person_id, week_start_of(day), tz)
    deleted = []
    for rec in existing.get(day, []):
        if rec.id is None:
            continue
        await store.delete_shift(rec.id)
        deleted.append(rec.id)
    return deleted
