import asyncio
import json

import pytest

from conftest import make_request
from api.streaming import format_event, stream_refresh, wants_streaming


async def _collect(run):
    return [frame async for frame in stream_refresh(run)]


def _payloads(frames):
    return [json.loads(frame[len("data: "):].strip()) for frame in frames]


def test_format_event():
    assert format_event({"type": "info", "message": "hi"}) == 'data: {"type": "info", "message": "hi"}\n\n'


@pytest.mark.parametrize("stream,headers,expected", [
    ("true", {}, True),
    ("TRUE", {}, True),
    ("false", {}, False),
    (None, {}, False),
    (None, {"Accept": "text/event-stream"}, True),
    (None, {"Accept": "application/json"}, False),
])
def test_wants_streaming(stream, headers, expected):
    assert wants_streaming(make_request(headers), stream) is expected


@pytest.mark.asyncio
async def test_stream_emits_entries_then_summary():
    async def run(sink):
        await sink({"type": "info", "message": "Fetching..."})
        await sink({"type": "success", "message": "Completed"})
        return {"success": True, "imported": 20, "logs": ["dropped"]}

    payloads = _payloads(await _collect(run))

    assert payloads == [
        {"type": "info", "message": "Fetching..."},
        {"type": "success", "message": "Completed"},
        {"success": True, "imported": 20, "done": True},
    ]


@pytest.mark.asyncio
async def test_stream_failure_ends_with_error_summary():
    async def run(sink):
        await sink({"type": "info", "message": "Fetching..."})
        raise ValueError("No standings returned from API")

    payloads = _payloads(await _collect(run))

    assert payloads[1] == {"type": "error", "message": "No standings returned from API"}
    final = payloads[-1]
    assert final["success"] is False
    assert final["error"] == "No standings returned from API"
    assert final["done"] is True
    assert final["duration"] >= 0


@pytest.mark.asyncio
async def test_refresh_keeps_running_after_client_disconnects():
    finished = asyncio.Event()
    late_entries = []

    async def run(sink):
        await sink({"type": "info", "message": "Fetching..."})
        # Upsert still in flight when the client goes away
        await asyncio.sleep(0.05)
        await sink({"type": "success", "message": "Upserted"})
        late_entries.append("upserted")
        finished.set()
        return {"success": True, "imported": 20}

    events = stream_refresh(run)
    first = await events.__anext__()
    assert json.loads(first[len("data: "):]) == {"type": "info", "message": "Fetching..."}

    await events.aclose()
    await asyncio.wait_for(finished.wait(), 1)

    assert late_entries == ["upserted"]
