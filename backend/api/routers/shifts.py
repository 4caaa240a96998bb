"""Read-only routes: roster, shift type catalogue, shift records, hours summary."""
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shiftlib.catalog import catalogue
from shiftlib.hours import summarize_hours
from shiftlib.models import ShiftRecord
from shiftlib.store import ShiftStoreClient, StoreError
from shiftlib.timerange import local_day
from ..dependencies import HOLIDAYS, get_store, get_tz, store_http_error

router = APIRouter()


def filter_shifts(
    records: list[ShiftRecord],
    start_date: Optional[date],
    end_date: Optional[date],
    user_id: Optional[int],
    tz,
) -> list[ShiftRecord]:
    """Apply the query filters locally; the store may ignore them."""
    out = []
    for rec in records:
        if user_id is not None and rec.user_id != user_id:
            continue
        day = local_day(rec.start_time, tz)
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue
        out.append(rec)
    return out


async def fetch_shifts(
    store: ShiftStoreClient,
    start_date: Optional[date],
    end_date: Optional[date],
    user_id: Optional[int],
    tz,
) -> list[ShiftRecord]:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date debe ser anterior o igual a end_date")
    try:
        records = await store.list_shifts(
            start_date=datetime.combine(start_date, time.min, tzinfo=tz) if start_date else None,
            end_date=datetime.combine(end_date, time.max, tzinfo=tz) if end_date else None,
            user_id=user_id,
        )
    except StoreError as e:
        raise store_http_error(e, 'list_shifts')
    return filter_shifts(records, start_date, end_date, user_id, tz)


@router.get(
    "/api/people",
    tags=["People"],
    summary="Roster by role",
    description="People of the given role, as offered in the planner's person selector.",
)
async def list_people(
    role: str = Query('supervisor', min_length=1, max_length=50),
    store: ShiftStoreClient = Depends(get_store),
):
    try:
        people = await store.list_users_by_role(role)
    except StoreError as e:
        raise store_http_error(e, 'list_people')
    return [
        {**p.model_dump(mode="json", by_alias=True), 'displayName': p.display_name}
        for p in people
    ]


@router.get(
    "/api/shift-types",
    tags=["Shifts"],
    summary="Shift and absence type catalogue",
    description="Every assignable value with its Spanish label and hour range. Public.",
)
def list_shift_types():
    return catalogue()


@router.get("/api/shifts", tags=["Shifts"], summary="Shift records")
async def list_shifts(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None, gt=0),
    store: ShiftStoreClient = Depends(get_store),
):
    tz = get_tz()
    records = await fetch_shifts(store, start_date, end_date, user_id, tz)
    return [r.to_wire() for r in records]


@router.get(
    "/api/shifts/summary",
    tags=["Shifts"],
    summary="Hours summary",
    description=(
        "Total, overtime (beyond 8h per shift), night (22:00-06:00), Sunday and "
        "holiday hours over the working shifts in range. Absences are not counted."
    ),
)
async def shifts_summary(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None, gt=0),
    store: ShiftStoreClient = Depends(get_store),
):
    tz = get_tz()
    records = await fetch_shifts(store, start_date, end_date, user_id, tz)
    return summarize_hours(records, HOLIDAYS, tz)
