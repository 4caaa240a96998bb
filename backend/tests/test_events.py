"""Tests for the SSE change notifications."""
import asyncio
import json

from api.routers.events import SHIFTS_CHANGED, _event_generator, _lock, _subscribers, broadcast, format_sse


class TestBroadcast:
    def test_broadcast_with_live_subscriber(self):
        """broadcast() should deliver {type, payload, timestamp} to a subscriber queue."""
        async def run():
            queue = asyncio.Queue()
            loop = asyncio.get_running_loop()
            with _lock:
                _subscribers.append((loop, queue))
            try:
                broadcast(SHIFTS_CHANGED, {"user_id": 7})
                await asyncio.sleep(0)
                return queue.get_nowait()
            finally:
                with _lock:
                    _subscribers.remove((loop, queue))

        event = asyncio.run(run())
        assert event["type"] == "shifts_changed"
        assert event["payload"] == {"user_id": 7}
        assert event["timestamp"]

    def test_broadcast_without_subscribers(self):
        event = broadcast(SHIFTS_CHANGED)
        assert event["payload"] == {}

    def test_closed_loop_subscriber_dropped(self):
        loop = asyncio.new_event_loop()
        loop.close()
        queue = asyncio.Queue()
        with _lock:
            _subscribers.append((loop, queue))
        broadcast(SHIFTS_CHANGED)
        assert (loop, queue) not in _subscribers


class TestStream:
    def test_format_sse(self):
        text = format_sse({"type": "shifts_changed", "payload": {"date": "2025-05-05"}, "timestamp": "t"})
        lines = text.split("\n")
        assert lines[0] == "event: shifts_changed"
        assert json.loads(lines[1][len("data: "):])["payload"]["date"] == "2025-05-05"
        assert text.endswith("\n\n")

    def test_event_generator_connected_event(self):
        """_event_generator should yield the connected event first."""
        async def run():
            queue = asyncio.Queue()

            class MockRequest:
                async def is_disconnected(self):
                    return True

            gen = _event_generator(MockRequest(), queue)
            first = await gen.__anext__()
            await gen.aclose()
            return first

        assert asyncio.run(run()).startswith("event: connected")
