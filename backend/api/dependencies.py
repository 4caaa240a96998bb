"""
Shared dependencies for the Shift Planner API.
Configuration, logging, planner sessions and store access used by the routers.
"""
import os
import logging
import logging.handlers
import time as _time

from fastapi import HTTPException, Header, Depends, Request
from typing import Optional
from slowapi import Limiter
from slowapi.util import get_remote_address

from shiftlib.grid import WeeklyGrid
from shiftlib.hours import DEFAULT_HOLIDAYS, parse_holidays
from shiftlib.store import HttpError, ShiftStoreClient, StoreError
from shiftlib.timerange import DEFAULT_TIMEZONE, get_zone

# ── Structured JSON Logging setup ───────────────────────────────
import json as _json
from datetime import datetime as _dt, timezone as _tz

class _JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _dt.fromtimestamp(record.created, tz=_tz.utc).strftime('%Y-%m-%dT%H:%M:%S.') + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return _json.dumps(entry, ensure_ascii=False)

_log_file = os.environ.get('SHIFT_API_LOG_FILE', '/tmp/shift-api.log')
_handler = logging.handlers.RotatingFileHandler(
    _log_file, maxBytes=10 * 1024 * 1024, backupCount=3
)
_handler.setFormatter(_JsonFormatter())

_logger = logging.getLogger('shiftapi')
_log_level_str = os.environ.get('SHIFT_API_LOG_LEVEL', 'INFO').upper()
_log_level = getattr(logging, _log_level_str, logging.INFO)
_logger.setLevel(_log_level)
_logger.addHandler(_handler)
_stderr_handler = logging.StreamHandler()
_stderr_handler.setFormatter(_JsonFormatter())
_logger.addHandler(_stderr_handler)

# shiftlib modules log under their own names; route them to the same handlers
_lib_logger = logging.getLogger('shiftlib')
_lib_logger.setLevel(_log_level)
_lib_logger.addHandler(_handler)
_lib_logger.addHandler(_stderr_handler)

# ── Config ──────────────────────────────────────────────────────
STORE_URL = os.environ.get('SHIFT_STORE_URL', 'http://localhost:3000')
STORE_TIMEOUT = float(os.environ.get('SHIFT_STORE_TIMEOUT', '10'))
STORE_COOKIE = os.environ.get('SHIFT_STORE_COOKIE') or None
TIMEZONE = os.environ.get('SHIFT_TIMEZONE', DEFAULT_TIMEZONE)
HOLIDAYS = parse_holidays(os.environ.get('SHIFT_HOLIDAYS', '') or ','.join(DEFAULT_HOLIDAYS))

# ── Rate Limiter ─────────────────────────────────────────────────
limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])

# ── Planner session store ────────────────────────────────────────
# NOTE: In-process dict, not safe for multi-worker deployments.
# token -> {"token", "role", "grid": WeeklyGrid, "expires_at", "created_at"}
_sessions: dict[str, dict] = {}

_SESSION_HOURS = float(os.environ.get('PLANNER_SESSION_HOURS', '8'))
_MAX_SESSIONS = int(os.environ.get('MAX_PLANNER_SESSIONS', '500'))

# Roles allowed to change assignments
EDITOR_ROLES = {'administrator', 'director'}


def _is_token_valid(token: str) -> bool:
    """Return True if the token exists and has not expired."""
    session = _sessions.get(token)
    if not session:
        return False
    expires_at = session.get('expires_at')
    if expires_at is not None and _time.time() > expires_at:
        del _sessions[token]
        return False
    return True


def create_session(token: str, role: str, grid: WeeklyGrid) -> dict:
    """Register a planner session. Evicts the oldest one when the store is full."""
    if len(_sessions) >= _MAX_SESSIONS:
        purge_expired_sessions()
    while len(_sessions) >= _MAX_SESSIONS:
        oldest = min(_sessions, key=lambda t: _sessions[t]['created_at'])
        _logger.info("Session limit reached, evicting session created at %s", _sessions[oldest]['created_at'])
        del _sessions[oldest]
    now = _time.time()
    session = {
        'token': token,
        'role': role,
        'grid': grid,
        'created_at': now,
        'expires_at': now + _SESSION_HOURS * 3600,
    }
    _sessions[token] = session
    return session


def get_current_session(
    request: Request,
    x_auth_token: Optional[str] = Header(None),
) -> Optional[dict]:
    """Return the planner session for the given token, or None.

    Reads from X-Auth-Token header first; falls back to ?token= query param
    for SSE connections where EventSource cannot set custom headers.
    """
    token = x_auth_token or request.query_params.get('token')
    if token and _is_token_valid(token):
        return _sessions[token]
    return None


def require_session(session: Optional[dict] = Depends(get_current_session)) -> dict:
    """Dependency: requires a live planner session."""
    if session is None:
        raise HTTPException(status_code=401, detail="No autenticado")
    return session


def require_editor(session: Optional[dict] = Depends(get_current_session)) -> dict:
    """Dependency: requires a session whose role may edit shifts."""
    if session is None:
        raise HTTPException(status_code=401, detail="No autenticado")
    if session.get('role') not in EDITOR_ROLES:
        raise HTTPException(
            status_code=403,
            detail=f"El rol '{session.get('role')}' no puede asignar turnos",
        )
    return session


def get_store(request: Request) -> ShiftStoreClient:
    """The store client created in the app lifespan."""
    return request.app.state.store


def get_tz():
    return get_zone(TIMEZONE)


def purge_expired_sessions() -> int:
    """Remove all expired sessions from the in-memory store. Returns count removed."""
    now = _time.time()
    to_remove = [
        tok for tok, s in list(_sessions.items())
        if s.get('expires_at') is not None and now > s['expires_at']
    ]
    for tok in to_remove:
        _sessions.pop(tok, None)
    return len(to_remove)


def store_http_error(e: StoreError, context: str = '') -> HTTPException:
    """Log a store failure, return the HTTP error for the browser.

    Backend rejections become 502 carrying the backend text; an unreachable
    backend becomes 503.
    """
    if isinstance(e, HttpError):
        _logger.warning("store error context=%s status=%s body=%s", context, e.status, e.body[:200])
        return HTTPException(
            status_code=502,
            detail=f"Error del servidor de turnos ({e.status}): {e.body}",
        )
    _logger.warning("store unreachable context=%s: %s", context, e)
    return HTTPException(
        status_code=503,
        detail="No se pudo conectar con el servidor de turnos",
    )
