"""Server-Sent Events (SSE) router for shift change notifications."""
import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from typing import AsyncGenerator
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["Events"])

SHIFTS_CHANGED = "shifts_changed"

# ── In-memory subscriber registry ──────────────────────────────
# List of (loop, queue) tuples, one per SSE connection.
_lock = threading.Lock()
_subscribers: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = []


def make_event(event_type: str, payload: dict | None = None) -> dict:
    return {
        "type": event_type,
        "payload": payload or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def broadcast(event_type: str, payload: dict | None = None) -> dict:
    """Broadcast an event to all connected SSE clients and return it.

    Thread-safe; may be called from sync endpoints as well.
    """
    event = make_event(event_type, payload)
    with _lock:
        dead = []
        for loop, q in _subscribers:
            try:
                loop.call_soon_threadsafe(q.put_nowait, event)
            except RuntimeError:
                # loop already closed
                dead.append((loop, q))
        for item in dead:
            _subscribers.remove(item)
        count = len(_subscribers)
    if count:
        _logger.debug("SSE broadcast: %s -> %d clients", event_type, count)
    return event


def subscriber_count() -> int:
    with _lock:
        return len(_subscribers)


def format_sse(event: dict) -> str:
    return f"event: {event['type']}\ndata: {json.dumps(event, ensure_ascii=False)}\n\n"


async def _event_generator(request: Request, queue: asyncio.Queue) -> AsyncGenerator[str, None]:
    """Yield SSE-formatted strings from the queue until the client disconnects."""
    try:
        yield format_sse(make_event("connected"))
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=25.0)
                yield format_sse(event)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
    finally:
        loop = asyncio.get_running_loop()
        with _lock:
            try:
                _subscribers.remove((loop, queue))
            except ValueError:
                pass
        _logger.debug("SSE client disconnected. Remaining: %d", subscriber_count())


@router.get("", summary="SSE event stream", description=(
    "Connect to receive real-time events.\n\n"
    "Events: `connected`, `shifts_changed`. Each data line is "
    "`{type, payload, timestamp}`."
))
async def sse_stream(request: Request):
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue(maxsize=50)
    with _lock:
        _subscribers.append((loop, queue))
    _logger.debug("SSE client connected. Total: %d", subscriber_count())

    return StreamingResponse(
        _event_generator(request, queue),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
