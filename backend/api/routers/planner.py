"""Planner router: weekly shift/absence grid of one person, and saving it."""
import secrets
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from shiftlib.catalog import parse_assignment
from shiftlib.grid import WeeklyGrid
from shiftlib.reconcile import ValidationError, delete_day, existing_by_day, save_week
from shiftlib.store import ShiftStoreClient, StoreError
from ..dependencies import (
    EDITOR_ROLES, _logger, create_session, get_store, get_tz, limiter,
    require_editor, require_session, store_http_error, _sessions,
)
from .events import SHIFTS_CHANGED, broadcast
from .reports import SUPERVISOR_ROLE

router = APIRouter()


# ── Request bodies ──────────────────────────────────────────────

class SessionCreate(BaseModel):
    editor_role: str = Field(..., min_length=1, max_length=50, description="Role of the operator, e.g. administrator")
    week_of: Optional[date] = Field(None, description="Any day of the week to open; defaults to today")


class PersonSelect(BaseModel):
    person_id: int = Field(..., gt=0)
    discard: bool = False


class WeekNavigate(BaseModel):
    direction: Literal['prev', 'next']
    discard: bool = False


class DaySet(BaseModel):
    value: Optional[str] = Field(None, description="Shift or absence type; null clears the day")

    @field_validator('value')
    @classmethod
    def check_value(cls, v):
        if v is None:
            return v
        parse_assignment(v)
        return v


# ── Helpers ─────────────────────────────────────────────────────

def _view(session: dict) -> dict:
    return {
        **session['grid'].to_dict(),
        'role': session['role'],
        'can_edit': session['role'] in EDITOR_ROLES,
    }


async def _records_for_grid(store: ShiftStoreClient, grid: WeeklyGrid, person_id: int, tz) -> list:
    by_day = await existing_by_day(store, person_id, grid.week_start, tz)
    return [rec for day in sorted(by_day) for rec in by_day[day]]


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Fecha no válida: {value}")


# ── Sessions ────────────────────────────────────────────────────

@router.post(
    "/api/planner/sessions",
    tags=["Planner"],
    summary="Open a planner session",
    description=(
        "Create a planner session for the given operator role and return its token. "
        "Send the token as `x-auth-token` on every other call. Public."
    ),
    status_code=201,
)
@limiter.limit("20/minute")
def open_session(request: Request, body: SessionCreate):
    tz = get_tz()
    week_of = body.week_of or datetime.now(tz).date()
    token = secrets.token_urlsafe(32)
    session = create_session(token, body.editor_role.strip().lower(), WeeklyGrid(week_of, tz))
    _logger.info("Planner session opened role=%s", session['role'])
    return {'token': token, 'expires_at': session['expires_at'], 'planner': _view(session)}


@router.delete(
    "/api/planner/sessions/current",
    tags=["Planner"],
    summary="Close the planner session",
)
def close_session(session: dict = Depends(require_session)):
    _sessions.pop(session['token'], None)
    return {'ok': True}


# ── Grid ────────────────────────────────────────────────────────

@router.get("/api/planner", tags=["Planner"], summary="Current planner grid")
def get_planner(session: dict = Depends(require_session)):
    return _view(session)


@router.put(
    "/api/planner/person",
    tags=["Planner"],
    summary="Select the person to plan",
    description=(
        "Load the person's persisted shifts of the displayed week into the grid. "
        "Fails with 409 while the grid has unsaved edits unless `discard` is true."
    ),
)
async def select_person(
    body: PersonSelect,
    session: dict = Depends(require_editor),
    store: ShiftStoreClient = Depends(get_store),
):
    grid: WeeklyGrid = session['grid']
    if grid.has_unsaved_changes() and not body.discard:
        raise HTTPException(status_code=409, detail="Hay cambios sin guardar en la semana actual")
    try:
        records = await _records_for_grid(store, grid, body.person_id, get_tz())
    except StoreError as e:
        raise store_http_error(e, 'select_person')
    dropped = grid.select_person(body.person_id, records)
    if dropped:
        _logger.info("Discarded %d unsaved day(s) on person change", dropped)
    return _view(session)


@router.post(
    "/api/planner/week",
    tags=["Planner"],
    summary="Move to the previous or next week",
    description="Fails with 409 while the grid has unsaved edits unless `discard` is true.",
)
async def navigate_week(
    body: WeekNavigate,
    session: dict = Depends(require_editor),
    store: ShiftStoreClient = Depends(get_store),
):
    grid: WeeklyGrid = session['grid']
    if grid.has_unsaved_changes() and not body.discard:
        raise HTTPException(status_code=409, detail="Hay cambios sin guardar en la semana actual")
    grid.navigate_week(body.direction)
    if grid.person_id is not None:
        try:
            grid.load(await _records_for_grid(store, grid, grid.person_id, get_tz()))
        except StoreError as e:
            raise store_http_error(e, 'navigate_week')
    return _view(session)


@router.put("/api/planner/days/{day}", tags=["Planner"], summary="Set or clear one day")
def set_day(day: str, body: DaySet, session: dict = Depends(require_editor)):
    grid: WeeklyGrid = session['grid']
    d = _parse_day(day)
    try:
        grid.set_day(d, body.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _view(session)


@router.post("/api/planner/clear", tags=["Planner"], summary="Clear every day of the week")
def clear_week(session: dict = Depends(require_editor)):
    session['grid'].clear_week()
    return _view(session)


# ── Persistence ─────────────────────────────────────────────────

async def _refresh_grid(store: ShiftStoreClient, grid: WeeklyGrid, person_id: int, week_start: date, tz) -> bool:
    """Re-read a persisted week into the grid, if the grid still shows that week."""
    def showing():
        return grid.person_id == person_id and grid.week_start == week_start

    if not showing():
        return False
    try:
        records = await _records_for_grid(store, grid, person_id, tz)
    except StoreError as e:
        _logger.warning("Grid refresh failed user=%s week=%s: %s", person_id, week_start.isoformat(), e)
        return False
    # The operator may have switched person or week while the listing ran
    if not showing():
        return False
    grid.refresh(records)
    return True


async def _person_name(store: ShiftStoreClient, person_id: int) -> Optional[str]:
    try:
        people = await store.list_users_by_role(SUPERVISOR_ROLE)
    except StoreError as e:
        _logger.warning("Roster lookup failed: %s", e)
        return None
    return next((p.display_name for p in people if p.id == person_id), None)


@router.post(
    "/api/planner/save",
    tags=["Planner"],
    summary="Save the week",
    description=(
        "Replace the person's shift of every assigned day in the remote store. "
        "Days are processed one after the other; a failing day does not stop the rest. "
        "Afterwards the grid is refreshed from the store if it still shows the saved "
        "person and week; unsaved edits are kept."
    ),
)
async def save(
    session: dict = Depends(require_editor),
    store: ShiftStoreClient = Depends(get_store),
):
    grid: WeeklyGrid = session['grid']
    tz = get_tz()
    try:
        result = await save_week(store, grid.snapshot(), tz)
    except ValidationError as e:
        if str(e) == "no person selected":
            raise HTTPException(status_code=400, detail="Seleccione una persona")
        raise HTTPException(status_code=400, detail="Asigne al menos un turno")
    except StoreError as e:
        raise store_http_error(e, 'save')

    if result.status == "success":
        result.person_name = await _person_name(store, result.person_id)
    refreshed = await _refresh_grid(store, grid, result.person_id, result.week_start, tz)
    broadcast(SHIFTS_CHANGED, {
        'user_id': result.person_id,
        'week_start': result.week_start.isoformat(),
        'status': result.status,
    })
    return {**result.to_dict(), 'refreshed': refreshed, 'planner': _view(session)}


@router.delete(
    "/api/planner/days/{day}",
    tags=["Planner"],
    summary="Delete the persisted shift of one day",
    description="Unsaved edits of the other days are kept.",
)
async def remove_day(
    day: str,
    session: dict = Depends(require_editor),
    store: ShiftStoreClient = Depends(get_store),
):
    grid: WeeklyGrid = session['grid']
    person_id, week_start = grid.person_id, grid.week_start
    if person_id is None:
        raise HTTPException(status_code=400, detail="Seleccione una persona")
    d = _parse_day(day)
    tz = get_tz()
    try:
        deleted = await delete_day(store, person_id, d, tz)
    except StoreError as e:
        raise store_http_error(e, 'delete_day')
    if not deleted:
        raise HTTPException(status_code=404, detail="No hay turno guardado para ese día")
    refreshed = False
    if grid.contains(d):
        refreshed = await _refresh_grid(store, grid, person_id, week_start, tz)
    broadcast(SHIFTS_CHANGED, {'user_id': person_id, 'date': d.isoformat(), 'deleted_ids': deleted})
    return {'deleted_ids': deleted, 'refreshed': refreshed, 'planner': _view(session)}
