"""
Async client for the dispatch backend's REST endpoints.

Only the calls the planner needs are wrapped. Every non-2xx response becomes
an HttpError carrying the response text verbatim, and so does a 2xx whose body
cannot be read (InvalidResponseError); transport failures become
NetworkError. Nothing is retried.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from .models import AlarmRow, AssignmentRow, ClientRow, Person, ShiftPayload, ShiftRecord

_logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for failures talking to the remote shift store."""


class HttpError(StoreError):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body}")
        self.status = status
        self.body = body


class InvalidResponseError(HttpError):
    """A 2xx answer whose body is not the JSON the call expects."""


class NetworkError(StoreError):
    pass


def _iso(value: datetime) -> str:
    return value.isoformat()


def _decode(response: httpx.Response, parse: Callable[[Any], Any]) -> Any:
    try:
        return parse(response.json())
    except ValueError as e:
        # json.JSONDecodeError and pydantic's ValidationError are both ValueErrors
        _logger.warning("store %s %s -> unreadable body: %s",
                        response.request.method, response.request.url.path, e)
        raise InvalidResponseError(response.status_code, response.text) from e


def _rows(data: Any) -> list:
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array, got {type(data).__name__}")
    return data


class ShiftStoreClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        cookie: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if cookie:
            headers["Cookie"] = cookie
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ShiftStoreClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            _logger.warning("store %s %s failed: %s", method, path, e)
            raise NetworkError(f"{method} {path}: {e}") from e
        if not response.is_success:
            _logger.warning("store %s %s -> %d", method, path, response.status_code)
            raise HttpError(response.status_code, response.text)
        return response

    # ── Shifts ─────────────────────────────────────────────────
    async def list_shifts(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        user_id: Optional[int] = None,
    ) -> list[ShiftRecord]:
        params: dict[str, Any] = {}
        if start_date is not None:
            params["startDate"] = _iso(start_date)
        if end_date is not None:
            params["endDate"] = _iso(end_date)
        if user_id is not None:
            params["userId"] = user_id
        response = await self._request("GET", "/api/shifts", params=params)
        return _decode(response, lambda data: [ShiftRecord.model_validate(row) for row in _rows(data)])

    async def create_shift(self, payload: ShiftPayload) -> ShiftRecord:
        response = await self._request("POST", "/api/shifts", json=payload.to_wire())
        record = _decode(response, ShiftRecord.model_validate)
        _logger.debug("created shift id=%s user=%s", record.id, record.user_id)
        return record

    async def delete_shift(self, shift_id: int) -> None:
        await self._request("DELETE", f"/api/shifts/{shift_id}")
        _logger.debug("deleted shift id=%s", shift_id)

    # ── Roster ─────────────────────────────────────────────────
    async def list_users_by_role(self, role: str) -> list[Person]:
        response = await self._request("GET", f"/api/users/by-role/{role}")
        return _decode(response, lambda data: [Person.model_validate(row) for row in _rows(data)])

    # ── Dispatch data (supervisor activity report) ─────────────
    async def list_assignments_detailed(self, params: Optional[dict] = None) -> list[AssignmentRow]:
        response = await self._request("GET", "/api/assignments/detailed", params=params or {})
        return _decode(response, _rows)

    async def list_alarms(self) -> list[AlarmRow]:
        response = await self._request("GET", "/api/alarms")
        return _decode(response, _rows)

    async def list_clients(self) -> list[ClientRow]:
        response = await self._request("GET", "/api/clients")
        return _decode(response, _rows)
