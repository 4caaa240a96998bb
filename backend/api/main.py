"""FastAPI application for the Shift Planner."""
import asyncio
import json
import os
import sys
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv

_STARTED_AT = time.time()

load_dotenv(os.path.join(os.path.dirname(__file__), '..', '.env'))

# backend/ must be importable for the shiftlib package
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from slowapi import _rate_limit_exceeded_handler  # noqa: E402
from slowapi.errors import RateLimitExceeded  # noqa: E402

from shiftlib.store import ShiftStoreClient  # noqa: E402

from .dependencies import (  # noqa: E402
    STORE_COOKIE,
    STORE_TIMEOUT,
    STORE_URL,
    _is_token_valid,
    _logger,
    _sessions,
    limiter,
    purge_expired_sessions,
)

API_VERSION = "1.0.0"
_CLEANUP_INTERVAL = 300

ALLOWED_ORIGINS = (
    [o.strip() for o in os.environ.get('ALLOWED_ORIGINS', '').split(',') if o.strip()]
    or ['http://localhost:5173', 'http://localhost:8000']
)

# Reachable without a planner session
_PUBLIC_PATHS = {'/api', '/api/health', '/api/version', '/api/planner/sessions', '/api/shift-types'}

# pydantic error type -> Spanish message
_VALIDATION_MSGS = {
    "missing": "Campo obligatorio",
    "int_parsing": "Debe ser un número entero",
    "greater_than": "Debe ser mayor que cero",
    "date_parsing": "Debe ser una fecha (AAAA-MM-DD)",
    "date_from_datetime_parsing": "Debe ser una fecha (AAAA-MM-DD)",
    "bool_parsing": "Debe ser true o false",
    "literal_error": "Valor no permitido",
    "value_error": "Valor no válido",
}


async def _purge_sessions_forever():
    while True:
        await asyncio.sleep(_CLEANUP_INTERVAL)
        try:
            removed = purge_expired_sessions()
        except Exception as exc:  # pragma: no cover
            _logger.warning("Session purge failed: %s", exc)
            continue
        if removed:
            _logger.debug("Purged %d expired planner sessions", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = ShiftStoreClient(STORE_URL, timeout=STORE_TIMEOUT, cookie=STORE_COOKIE)
    _logger.info("Shift store at %s", STORE_URL)
    purger = asyncio.create_task(_purge_sessions_forever())
    yield
    purger.cancel()
    await app.state.store.aclose()
    _logger.info("Store client closed")


app = FastAPI(
    lifespan=lifespan,
    title="Shift Planner API",
    description=(
        "Weekly shift and absence planning for patrol supervisors.\n\n"
        "Open a planner session with `POST /api/planner/sessions` and send its token "
        "as `x-auth-token`. Sessions opened as **administrator** or **director** may "
        "edit and save; any other role is read-only."
    ),
    version=API_VERSION,
    openapi_tags=[
        {"name": "Health", "description": "Service status"},
        {"name": "Planner", "description": "Weekly shift/absence planner sessions"},
        {"name": "Shifts", "description": "Shift records, catalogue and hours summary"},
        {"name": "People", "description": "Roster lookup"},
        {"name": "Export", "description": "Excel exports"},
        {"name": "Events", "description": "Server-sent change notifications"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "x-auth-token"],
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    if os.environ.get('SHIFT_API_HSTS', '').lower() in ('1', 'true', 'yes'):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Answer 422 with one Spanish line per invalid field."""
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        msg = _VALIDATION_MSGS.get(err.get("type", ""), err.get("msg", "Valor no válido"))
        parts.append(f"{field}: {msg}" if field else msg)
    return JSONResponse(status_code=422, content={"detail": "; ".join(parts) or "Entrada no válida"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    _logger.error(
        "Unhandled %s on %s %s: %s",
        type(exc).__name__, request.method, request.url.path, exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Error interno del servidor"})


def _request_token(request: Request):
    return request.headers.get('x-auth-token') or request.query_params.get('token')


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """One JSON access line per request, tagged with a short request id."""
    req_id = uuid.uuid4().hex[:8]
    started = time.perf_counter()
    response = await call_next(request)
    token = _request_token(request)
    _logger.info(json.dumps({
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "req_id": req_id,
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "duration_ms": round((time.perf_counter() - started) * 1000),
        "role": _sessions.get(token, {}).get('role', '-') if token else '-',
    }, ensure_ascii=False))
    response.headers["X-Request-ID"] = req_id
    return response


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Every /api/* path outside _PUBLIC_PATHS needs a live planner session."""
    path = request.url.path
    if path in _PUBLIC_PATHS or not path.startswith('/api/'):
        return await call_next(request)
    token = _request_token(request)
    if not token or not _is_token_valid(token):
        _logger.warning("AUTH 401 | %s %s", request.method, path)
        return JSONResponse(status_code=401, content={"detail": "No autenticado"})
    response = await call_next(request)
    if request.method in ('POST', 'PUT', 'DELETE') and response.status_code < 400:
        _logger.info("WRITE %s %s role=%s", request.method, path, _sessions.get(token, {}).get('role', '?'))
    return response


from .routers import events, planner, reports, shifts  # noqa: E402

app.include_router(planner.router)
app.include_router(shifts.router)
app.include_router(reports.router)
app.include_router(events.router)


@app.get("/api/health", tags=["Health"], summary="Health check")
def health():
    """Status, version, uptime in seconds and live planner sessions. Public."""
    return {
        "status": "ok",
        "version": API_VERSION,
        "uptime_seconds": round(time.time() - _STARTED_AT, 1),
        "sessions": len(_sessions),
    }


@app.get("/api/version", tags=["Health"], summary="API version")
def version():
    return {"version": API_VERSION, "service": "Shift Planner API"}


@app.get("/api", tags=["Health"], summary="API root")
def root():
    return {"service": "Shift Planner API", "version": API_VERSION, "store": STORE_URL}
