"""
Shared test fixtures for the Shift Planner backend tests.

The dispatch backend is replaced by FakeBackend, an in-memory implementation
of the REST endpoints the store client talks to, mounted through
httpx.MockTransport.
"""
import json
import os
import sys
from zoneinfo import ZoneInfo

import httpx
import pytest

# ── Python path setup ──────────────────────────────────────────────────────────
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

os.environ.setdefault("SHIFT_API_LOG_FILE", os.path.join(os.environ.get("TMPDIR", "/tmp"), "shift-api-test.log"))

from shiftlib.store import ShiftStoreClient  # noqa: E402

TZ = ZoneInfo("America/Bogota")
STORE_URL = "http://store.test"


# ── Wire fixtures ──────────────────────────────────────────────────────────────

def shift_row(id, user_id, start, end, shift_type="morning_8h", absence_type=None, status=None, **extra):
    """A shift record as the backend returns it (camelCase JSON)."""
    row = {
        "id": id,
        "userId": user_id,
        "startTime": start,
        "endTime": end,
        "status": status or ("absence" if absence_type else "scheduled"),
        "shiftType": None if absence_type else shift_type,
        "absenceType": absence_type,
        "notes": None,
        "createdAt": "2025-04-30T15:00:00Z",
        "createdBy": 1,
    }
    row.update(extra)
    return row


def person_row(id, first, last, username=None, role="supervisor", **extra):
    row = {
        "id": id,
        "username": username or f"{first.lower()}.{last.lower()}",
        "firstName": first,
        "lastName": last,
        "role": role,
        "identificationNumber": f"10{id:04d}",
        "whatsappNumber": f"+57300{id:07d}",
        "motorcyclePlate": f"ABC{id:02d}D",
    }
    row.update(extra)
    return row


class FakeBackend:
    """In-memory dispatch backend. Records every call in `calls`."""

    def __init__(self):
        self.shifts: list[dict] = []
        self.users: dict[str, list[dict]] = {}
        self.assignments: list[dict] = []
        self.alarms: list[dict] = []
        self.clients: list[dict] = []
        self.calls: list[tuple[str, str]] = []
        self.list_params: list[dict] = []
        self.created: list[dict] = []
        # shift id -> HTTP status returned on DELETE
        self.fail_delete: dict[int, int] = {}
        # local start date (YYYY-MM-DD) -> HTTP status returned on POST
        self.fail_create: dict[str, int] = {}
        self.fail_list: int | None = None
        # listings answered normally before fail_list kicks in
        self.fail_list_from = 0
        # local start dates whose POST answers 201 with a non-JSON body
        self.garbled_create: set[str] = set()
        # local start dates / shift ids whose POST / DELETE drops the connection
        self.drop_create: set[str] = set()
        self.drop_delete: set[int] = set()
        self.offline = False
        self._next_id = 1000

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        method, path = request.method, request.url.path
        self.calls.append((method, path))

        if path == "/api/shifts" and method == "GET":
            self.list_params.append(dict(request.url.params))
            if self.fail_list and len(self.list_params) > self.fail_list_from:
                return httpx.Response(self.fail_list, text="listing failed")
            # Filters are ignored, like the real backend
            return httpx.Response(200, json=self.shifts)

        if path == "/api/shifts" and method == "POST":
            body = json.loads(request.content)
            day = body["startTime"][:10]
            if day in self.drop_create:
                raise httpx.ConnectError("connection reset", request=request)
            if day in self.garbled_create:
                return httpx.Response(201, text="OK")
            if day in self.fail_create:
                return httpx.Response(self.fail_create[day], text='{"message":"Datos de turno inválidos"}')
            row = {**body, "id": self._next_id, "createdAt": "2025-05-01T12:00:00Z", "createdBy": 1}
            self._next_id += 1
            self.shifts.append(row)
            self.created.append(body)
            return httpx.Response(201, json=row)

        if path.startswith("/api/shifts/") and method == "DELETE":
            shift_id = int(path.rsplit("/", 1)[1])
            if shift_id in self.drop_delete:
                raise httpx.ConnectError("connection reset", request=request)
            if shift_id in self.fail_delete:
                return httpx.Response(self.fail_delete[shift_id], text="cannot delete")
            for row in self.shifts:
                if row["id"] == shift_id:
                    self.shifts.remove(row)
                    return httpx.Response(200, json={"message": "Turno eliminado"})
            return httpx.Response(404, json={"message": "Turno no encontrado"})

        if path.startswith("/api/users/by-role/"):
            role = path.rsplit("/", 1)[1]
            return httpx.Response(200, json=self.users.get(role, []))
        if path == "/api/assignments/detailed":
            return httpx.Response(200, json=self.assignments)
        if path == "/api/alarms":
            return httpx.Response(200, json=self.alarms)
        if path == "/api/clients":
            return httpx.Response(200, json=self.clients)
        return httpx.Response(404, text="not found")

    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] != "GET"]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_store(backend):
    """Factory: a ShiftStoreClient wired to the fake backend.

    Create it inside the coroutine that uses it (`async with make_store() as store`).
    """
    def _make():
        return ShiftStoreClient(STORE_URL, transport=httpx.MockTransport(backend.handler))
    return _make


# ── API client fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def app():
    from api.main import app as _app
    return _app


@pytest.fixture
def api_client(app, backend):
    """TestClient whose store dependency talks to the fake backend. Rate limits off."""
    from starlette.testclient import TestClient
    from api.dependencies import get_store, limiter, _sessions
    store = ShiftStoreClient(STORE_URL, transport=httpx.MockTransport(backend.handler))
    app.dependency_overrides[get_store] = lambda: store
    limiter.enabled = False
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    limiter.enabled = True
    app.dependency_overrides.clear()
    _sessions.clear()


def open_session(client, role="administrator", week_of="2025-05-07") -> str:
    res = client.post("/api/planner/sessions", json={"editor_role": role, "week_of": week_of})
    assert res.status_code == 201, res.text
    return res.json()["token"]


@pytest.fixture
def editor_client(api_client):
    """api_client carrying an administrator session on the week of 2025-05-05."""
    api_client.headers["X-Auth-Token"] = open_session(api_client)
    return api_client


@pytest.fixture
def viewer_client(api_client):
    """api_client carrying a read-only (supervisor) session."""
    api_client.headers["X-Auth-Token"] = open_session(api_client, role="supervisor")
    return api_client
