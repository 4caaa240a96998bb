"""Excel export router."""
import unicodedata
from urllib.parse import quote
from datetime import date, datetime
from fastapi import APIRouter, HTTPException, Query, Depends, Request
from fastapi.responses import Response as _Response
from typing import Optional

from shiftlib.export import build_schedule_report, build_supervisor_report, report_filename, write_workbook
from shiftlib.store import ShiftStoreClient, StoreError
from ..dependencies import get_store, get_tz, limiter, store_http_error, _logger

router = APIRouter()

SUPERVISOR_ROLE = 'supervisor'


def _xlsx_response(content: bytes, filename: str) -> _Response:
    # ASCII fallback plus the RFC 5987 form for accented names
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode()
    disposition = f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"
    return _Response(
        content=content,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": disposition},
    )


def _check_range(start_date: Optional[date], end_date: Optional[date]) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date debe ser anterior o igual a end_date")


@router.get(
    "/api/export/schedule",
    tags=["Export"],
    summary="Export shift schedule as Excel",
    description=(
        "Workbook with the sheets Información, Resumen por Supervisor, Detalle de Turnos "
        "and Calendario Semanal. Optionally restricted to a date range and one person. "
        "Returns 404 when no shift matches."
    ),
)
@limiter.limit("10/minute")
async def export_schedule(
    request: Request,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    person_id: Optional[int] = Query(None, gt=0),
    store: ShiftStoreClient = Depends(get_store),
):
    _check_range(start_date, end_date)
    tz = get_tz()
    try:
        shifts = await store.list_shifts(user_id=person_id)
        people = await store.list_users_by_role(SUPERVISOR_ROLE)
    except StoreError as e:
        raise store_http_error(e, 'export_schedule')
    now = datetime.now(tz)
    report = build_schedule_report(
        shifts, people,
        start_date=start_date, end_date=end_date, person_id=person_id,
        generated_at=now, tz=tz,
    )
    if not report:
        raise HTTPException(status_code=404, detail="No hay turnos para exportar con los filtros seleccionados")
    person = next((p for p in people if p.id == person_id), None)
    filename = report_filename('Horarios_Supervisores', person, person_id, start_date, end_date, now.date())
    _logger.info("Schedule export %s rows=%d", filename, len(report['Detalle de Turnos']))
    return _xlsx_response(write_workbook(report), filename)


@router.get(
    "/api/export/supervisors",
    tags=["Export"],
    summary="Export supervisor activity as Excel",
    description=(
        "Workbook with the sheets Resumen, Por Supervisor, Rendimiento, "
        "Detalle Asignaciones and Revistas, built from the dispatch assignments."
    ),
)
@limiter.limit("10/minute")
async def export_supervisors(
    request: Request,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    supervisor_id: Optional[int] = Query(None, gt=0),
    store: ShiftStoreClient = Depends(get_store),
):
    _check_range(start_date, end_date)
    tz = get_tz()
    params = {}
    if start_date and end_date:
        params['startDate'] = start_date.isoformat()
        params['endDate'] = end_date.isoformat()
    if supervisor_id is not None:
        params['supervisorId'] = supervisor_id
    try:
        assignments = await store.list_assignments_detailed(params)
        alarms = await store.list_alarms()
        clients = await store.list_clients()
        supervisors = await store.list_users_by_role(SUPERVISOR_ROLE)
    except StoreError as e:
        raise store_http_error(e, 'export_supervisors')
    now = datetime.now(tz)
    report = build_supervisor_report(
        assignments, alarms, clients, supervisors,
        start_date=start_date, end_date=end_date, supervisor_id=supervisor_id,
        generated_at=now, tz=tz,
    )
    person = next((p for p in supervisors if p.id == supervisor_id), None)
    filename = report_filename('Reporte_Supervisores', person, supervisor_id, start_date, end_date, now.date())
    _logger.info("Supervisor export %s rows=%d", filename, len(report['Detalle Asignaciones']))
    return _xlsx_response(write_workbook(report), filename)
