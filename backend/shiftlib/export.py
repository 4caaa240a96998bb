"""
Spreadsheet reports built from store data.

The build_* functions are pure: they take already fetched rows and return an
ordered mapping of sheet name to a list of row dicts (column -> value). An
empty dict row is a blank spacer line. write_workbook() turns such a mapping
into an .xlsx file.
"""
import io
import re
from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Iterable, Optional

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .catalog import ShiftStatus, parse_assignment, report_label
from .models import AlarmRow, AssignmentRow, ClientRow, Person, ShiftRecord
from .timerange import local_day, week_days, week_start_of

Report = dict[str, list[dict[str, Any]]]

NA = 'N/A'

_WEEKDAY_ABBR = ['lun', 'mar', 'mié', 'jue', 'vie', 'sáb', 'dom']

_EVENT_TYPES = {
    'intrusion': 'Intrusión',
    'fire': 'Incendio',
    'panic': 'Pánico',
    'technical': 'Técnica',
    'revista_programada': 'Revista Programada',
    'revista_rutina': 'Revista de Rutina',
}

_ASSIGNMENT_STATUS = {
    'accepted': 'Aceptada',
    'on_site': 'En Sitio',
    'completed': 'Completada',
    'canceled': 'Cancelada',
    'pending': 'Pendiente',
    'dispatched': 'Despachada',
    'active': 'Activa',
}

_REVIEW_TYPES = ('Revista Programada', 'Revista de Rutina')


# ── Formatting helpers ──────────────────────────────────────────

def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _local(ts: datetime, tz: tzinfo) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz)


def format_datetime(value: Any, tz: tzinfo) -> str:
    if value is None or value == '':
        return NA
    ts = _parse_ts(value)
    if ts is None:
        return 'Fecha inválida'
    return _local(ts, tz).strftime('%d/%m/%Y %H:%M:%S')


def _fmt_date(d: date) -> str:
    return d.strftime('%d/%m/%Y')


def _period(start_date: Optional[date], end_date: Optional[date]) -> str:
    if start_date and end_date:
        return f"{_fmt_date(start_date)} - {_fmt_date(end_date)}"
    return 'Todos los registros'


def _in_range(ts: datetime, start_date: Optional[date], end_date: Optional[date], tz: tzinfo) -> bool:
    ts = _local(ts, tz)
    if start_date and ts < datetime.combine(start_date, time.min, tzinfo=tz):
        return False
    if end_date and ts > datetime.combine(end_date, time.max, tzinfo=tz):
        return False
    return True


def _minutes_between(a: Optional[datetime], b: Optional[datetime]) -> Optional[int]:
    if a is None or b is None:
        return None
    return round((b - a).total_seconds() / 60)


def _avg(values: list[int]) -> Any:
    if not values:
        return NA
    return round(sum(values) / len(values), 1)


def _shift_type_label(raw: Optional[str]) -> str:
    if not raw:
        return NA
    try:
        return report_label(parse_assignment(raw))
    except ValueError:
        return raw


def _status_label(status: str) -> str:
    if status == ShiftStatus.SCHEDULED.value:
        return 'Programado'
    if status == ShiftStatus.ABSENCE.value:
        return 'Ausencia'
    return status


def report_filename(
    prefix: str,
    person: Optional[Person],
    person_id: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
    today: date,
) -> str:
    """e.g. Horarios_Supervisores_Ana_Gomez_20250501_20250531.xlsx"""
    name_part = ''
    if person_id is not None:
        if person is not None:
            raw = f"{person.first_name or ''}_{person.last_name or ''}".strip()
            name_part = '_' + re.sub(r'\s+', '_', raw)
        else:
            name_part = '_Supervisor'
    if start_date and end_date:
        date_part = f"_{start_date:%Y%m%d}_{end_date:%Y%m%d}"
    else:
        date_part = f"_{today:%Y%m%d}"
    return f"{prefix}{name_part}{date_part}.xlsx"


def _info_row(
    generated_at: datetime,
    start_date: Optional[date],
    end_date: Optional[date],
    person_id: Optional[int],
    people: dict[int, Person],
    tz: tzinfo,
) -> dict:
    if person_id is None:
        who = 'Todos los supervisores'
    else:
        person = people.get(person_id)
        who = person.display_name if person else NA
    return {
        'Fecha de Generación': format_datetime(generated_at, tz),
        'Periodo': _period(start_date, end_date),
        'Supervisor': who,
    }


# ── Schedule report ─────────────────────────────────────────────

def build_schedule_report(
    shifts: Iterable[ShiftRecord],
    people: Iterable[Person],
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    person_id: Optional[int] = None,
    generated_at: datetime,
    tz: tzinfo,
) -> Report:
    """Shift schedule workbook. Returns {} when no shift matches the filters."""
    by_id = {p.id: p for p in people}
    selected = [
        s for s in shifts
        if (person_id is None or s.user_id == person_id)
        and _in_range(s.start_time, start_date, end_date, tz)
    ]
    if not selected:
        return {}
    selected.sort(key=lambda s: _local(s.start_time, tz), reverse=True)

    def name_of(user_id: int) -> str:
        p = by_id.get(user_id)
        return p.display_name if p else f"ID: {user_id}"

    detail = []
    for s in selected:
        p = by_id.get(s.user_id)
        detail.append({
            'ID': s.id,
            'Supervisor': name_of(s.user_id),
            'Identificación': (p.identification_number if p else None) or NA,
            'WhatsApp': (p.whatsapp_number if p else None) or NA,
            'Placa Moto': (p.motorcycle_plate if p else None) or NA,
            'Fecha Inicio': format_datetime(s.start_time, tz),
            'Fecha Fin': format_datetime(s.end_time, tz),
            'Estado': _status_label(s.status),
            'Tipo de Turno': _shift_type_label(s.shift_type) if s.status == ShiftStatus.SCHEDULED.value else NA,
            'Tipo de Ausencia': _shift_type_label(s.absence_type) if s.status == ShiftStatus.ABSENCE.value else NA,
            'Notas': s.notes or NA,
            'Creado Por': s.created_by or NA,
            'Fecha Creación': format_datetime(s.created_at, tz),
        })

    # Per-person summary, in the order people first appear in the detail sheet
    grouped: dict[str, list[dict]] = {}
    for row in detail:
        grouped.setdefault(row['Supervisor'], []).append(row)
    summary = []
    for name, rows in grouped.items():
        shift_counts: dict[str, int] = {}
        absence_counts: dict[str, int] = {}
        for row in rows:
            if row['Estado'] == 'Programado':
                shift_counts[row['Tipo de Turno']] = shift_counts.get(row['Tipo de Turno'], 0) + 1
            elif row['Estado'] == 'Ausencia':
                absence_counts[row['Tipo de Ausencia']] = absence_counts.get(row['Tipo de Ausencia'], 0) + 1
        summary.append({
            'Supervisor': name,
            'Total Turnos': len(rows),
            'Turnos Programados': sum(shift_counts.values()),
            'Ausencias': sum(absence_counts.values()),
            'Turnos Mañana': shift_counts.get('Mañana (06:00-14:00)', 0),
            'Turnos Tarde': shift_counts.get('Tarde (14:00-22:00)', 0),
            'Turnos Día': shift_counts.get('Día (06:00-18:00)', 0),
            'Turnos Noche': shift_counts.get('Noche (18:00-06:00)', 0),
            'Vacaciones': absence_counts.get('Vacaciones', 0),
            'Enfermedad': absence_counts.get('Enfermedad', 0),
            'Descanso': absence_counts.get('Descanso', 0),
            'Permiso': absence_counts.get('Permiso', 0),
            'Suspensión': absence_counts.get('Suspensión', 0),
        })

    return {
        'Información': [_info_row(generated_at, start_date, end_date, person_id, by_id, tz)],
        'Resumen por Supervisor': summary,
        'Detalle de Turnos': detail,
        'Calendario Semanal': _calendar_rows(selected, name_of, tz),
    }


def _calendar_cell(s: ShiftRecord) -> str:
    if s.status == ShiftStatus.SCHEDULED.value and s.shift_type:
        return _shift_type_label(s.shift_type)
    if s.status == ShiftStatus.ABSENCE.value and s.absence_type:
        return _shift_type_label(s.absence_type)
    return s.status


def _calendar_rows(shifts: list[ShiftRecord], name_of, tz: tzinfo) -> list[dict]:
    weeks: dict[date, dict[str, list[ShiftRecord]]] = {}
    for s in sorted(shifts, key=lambda x: _local(x.start_time, tz)):
        monday = week_start_of(local_day(s.start_time, tz))
        weeks.setdefault(monday, {}).setdefault(name_of(s.user_id), []).append(s)

    rows: list[dict] = []
    for monday in sorted(weeks):
        days = week_days(monday)
        rows.append({'Semana': f"{_fmt_date(days[0])} al {_fmt_date(days[6])}"})
        rows.append({})
        header = {'Supervisor': ''}
        for i, d in enumerate(days):
            header[f'Día {i + 1}'] = f"{_WEEKDAY_ABBR[i]} {d:%d/%m}"
        rows.append(header)
        for name, person_shifts in weeks[monday].items():
            row = {'Supervisor': name}
            for i in range(7):
                row[f'Día {i + 1}'] = '-'
            for s in person_shifts:
                offset = (local_day(s.start_time, tz) - monday).days
                row[f'Día {offset + 1}'] = _calendar_cell(s)
            rows.append(row)
        rows.append({})
        rows.append({})
    return rows


# ── Supervisor activity report ──────────────────────────────────

def build_supervisor_report(
    assignments: Iterable[AssignmentRow],
    alarms: Iterable[AlarmRow],
    clients: Iterable[ClientRow],
    supervisors: Iterable[Person],
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    supervisor_id: Optional[int] = None,
    generated_at: datetime,
    tz: tzinfo,
) -> Report:
    """Patrol assignment activity per supervisor."""
    sup_by_id = {p.id: p for p in supervisors}
    if supervisor_id is not None:
        sup_by_id = {k: v for k, v in sup_by_id.items() if k == supervisor_id}
    alarm_by_id = {a.get('id'): a for a in alarms}
    client_by_id = {c.get('id'): c for c in clients}

    selected = []
    for a in assignments:
        if supervisor_id is not None and a.get('supervisorId') != supervisor_id:
            continue
        if start_date and end_date:
            assigned = _parse_ts(a.get('assignedAt'))
            if assigned is None or not _in_range(assigned, start_date, end_date, tz):
                continue
        selected.append(a)

    detail = []
    response_by_sup: dict[int, list[int]] = {}
    for a in selected:
        sup = sup_by_id.get(a.get('supervisorId'))
        if sup is None:
            continue
        alarm = alarm_by_id.get(a.get('alarmId')) or {}
        client = client_by_id.get(alarm.get('clientId')) if alarm.get('clientId') else None
        assigned = _parse_ts(a.get('assignedAt'))
        accepted = _parse_ts(a.get('acceptedAt'))
        arrived = _parse_ts(a.get('arrivedAt'))
        completed = _parse_ts(a.get('completedAt'))
        response = _minutes_between(assigned, accepted)
        arrival = _minutes_between(accepted, arrived)
        total = _minutes_between(assigned, completed)
        if response is not None:
            response_by_sup.setdefault(sup.id, []).append(response)
        event_type = alarm.get('type') or a.get('alarmType') or NA
        if a.get('location'):
            address = a['location']
        elif client:
            address = f"{client.get('address') or ''}, {client.get('city') or ''}".strip()
        else:
            address = NA
        status = a.get('status') or NA
        detail.append({
            'ID Asignación': a.get('id'),
            'Supervisor': sup.display_name,
            'Identificación': sup.identification_number or NA,
            'WhatsApp': sup.whatsapp_number or NA,
            'Placa Moto': sup.motorcycle_plate or NA,
            'ID Alarma': a.get('alarmId') or NA,
            'Número de Cuenta': (client or {}).get('accountNumber') or (client or {}).get('clientCode') or a.get('clientCode') or NA,
            'Razón Social': (client or {}).get('businessName') or a.get('clientName') or NA,
            'Tipo de Evento': _EVENT_TYPES.get(event_type, event_type),
            'Dirección': address,
            'Estado': _ASSIGNMENT_STATUS.get(status, status),
            'Fecha/Hora Asignación': format_datetime(a.get('assignedAt'), tz),
            'Fecha/Hora Aceptación': format_datetime(a.get('acceptedAt'), tz),
            'Fecha/Hora Llegada': format_datetime(a.get('arrivedAt'), tz),
            'Fecha/Hora Finalización': format_datetime(a.get('completedAt'), tz),
            'Tiempo Respuesta (min)': response if response is not None else NA,
            'Tiempo Llegada (min)': arrival if arrival is not None else NA,
            'Tiempo Total (min)': total if total is not None else NA,
            'Notas': a.get('notes') or '',
            '_assigned': _local(assigned, tz) if assigned else None,
            '_sup_id': sup.id,
        })

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    detail.sort(key=lambda r: r['_assigned'] or epoch, reverse=True)
    # keyed by id: two supervisors may share a display name
    grouped: dict[int, list[dict]] = {}
    for row in detail:
        del row['_assigned']
        grouped.setdefault(row.pop('_sup_id'), []).append(row)
    reviews = [r for r in detail if r['Tipo de Evento'] in _REVIEW_TYPES]

    per_supervisor = []
    for sup_id, rows in grouped.items():
        types: dict[str, int] = {}
        statuses: dict[str, int] = {}
        responses, arrivals = [], []
        for row in rows:
            types[row['Tipo de Evento']] = types.get(row['Tipo de Evento'], 0) + 1
            statuses[row['Estado']] = statuses.get(row['Estado'], 0) + 1
            if row['Tiempo Respuesta (min)'] != NA:
                responses.append(row['Tiempo Respuesta (min)'])
            if row['Tiempo Llegada (min)'] != NA:
                arrivals.append(row['Tiempo Llegada (min)'])
        per_supervisor.append({
            'ID Supervisor': sup_id,
            'Supervisor': sup_by_id[sup_id].display_name,
            'Total Asignaciones': len(rows),
            'Tiempo Promedio Respuesta (min)': _avg(responses),
            'Tiempo Promedio Llegada (min)': _avg(arrivals),
            'Alarmas': types.get('Intrusión', 0),
            'Incendios': types.get('Incendio', 0),
            'Pánicos': types.get('Pánico', 0),
            'Técnicas': types.get('Técnica', 0),
            'Revistas Programadas': types.get('Revista Programada', 0),
            'Revistas Rutina': types.get('Revista de Rutina', 0),
            'Completadas': statuses.get('Completada', 0),
            'En Sitio': statuses.get('En Sitio', 0),
            'Canceladas': statuses.get('Cancelada', 0),
        })

    performance = []
    for sup in sup_by_id.values():
        performance.append({
            'ID': sup.id,
            'Nombre': sup.first_name or NA,
            'Apellido': sup.last_name or NA,
            'Nombre Completo': sup.display_name,
            'Identificación': sup.identification_number or NA,
            'WhatsApp': sup.whatsapp_number or NA,
            'Placa Moto': sup.motorcycle_plate or NA,
            'Alarmas Respondidas': len(grouped.get(sup.id, [])),
            'Tiempo Promedio (min)': _avg(response_by_sup.get(sup.id, [])),
        })

    all_responses = [m for values in response_by_sup.values() for m in values]
    summary = {
        **_info_row(generated_at, start_date, end_date, supervisor_id, sup_by_id, tz),
        'Total Supervisores': len(sup_by_id),
        'Total Asignaciones': len(detail),
        'Tiempo Promedio de Respuesta (min)': _avg(all_responses),
    }
    return {
        'Resumen': [summary],
        'Por Supervisor': per_supervisor,
        'Rendimiento': performance,
        'Detalle Asignaciones': detail,
        'Revistas': reviews,
    }


# ── Workbook writer ─────────────────────────────────────────────

def _columns(rows: list[dict]) -> list[str]:
    cols: list[str] = []
    for row in rows:
        for key in row:
            if key not in cols:
                cols.append(key)
    return cols


def write_workbook(report: Report) -> bytes:
    """Serialize a report to .xlsx bytes, one worksheet per sheet name."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    thin = Side(border_style="thin", color="CBD5E1")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True, color="FFFFFF", size=9)
    header_fill = PatternFill(fill_type="solid", fgColor="1E293B")
    for title, rows in report.items():
        # Excel caps sheet titles at 31 characters
        ws = wb.create_sheet(title=title[:31])
        cols = _columns(rows)
        for c, name in enumerate(cols, start=1):
            cell = ws.cell(1, c, name)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="left")
            cell.border = border
            ws.column_dimensions[get_column_letter(c)].width = max(12, min(len(name) + 4, 40))
        for r_idx, row in enumerate(rows, start=2):
            if not row:
                continue
            fill = PatternFill(fill_type="solid", fgColor="F8FAFC" if r_idx % 2 == 0 else "FFFFFF")
            for c, name in enumerate(cols, start=1):
                if name not in row:
                    continue
                cell = ws.cell(r_idx, c, row[name])
                cell.font = Font(size=9)
                cell.fill = fill
                cell.border = border
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
