"""
Server-Sent Events helpers for streaming refresh progress.
"""

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Set

from fastapi import Request
from fastapi.responses import StreamingResponse

from refresh.entity import LogSink

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}

_DONE = object()

# Refreshes still running after their stream closed
_running: Set[asyncio.Task] = set()


def format_event(payload: Dict[str, Any]) -> str:
    """One SSE frame: 'data: <json>' plus a blank line."""
    return f"data: {json.dumps(payload, default=str)}\n\n"


def wants_streaming(request: Request, stream: Any = None) -> bool:
    """stream=true query flag or an Accept: text/event-stream header."""
    if stream is True or str(stream).lower() == "true":
        return True
    return "text/event-stream" in request.headers.get("accept", "")


async def stream_refresh(
    run: Callable[[LogSink], Awaitable[Dict[str, Any]]],
) -> AsyncIterator[str]:
    """
    Run a refresher and yield its log entries as SSE frames.

    The refresher runs as a task feeding a queue; the final frame carries its
    summary (or the error) with done: true. If the client goes away the task
    keeps running to completion and its remaining entries are dropped.
    """
    queue: asyncio.Queue = asyncio.Queue()
    disconnected = asyncio.Event()
    start = time.perf_counter()

    async def publish(item: Any) -> None:
        if not disconnected.is_set():
            await queue.put(item)

    async def worker():
        try:
            summary = await run(publish)
            final = {k: v for k, v in summary.items() if k != "logs"}
        except Exception as e:
            logger.error("Streaming refresh failed", extra={"error": str(e)}, exc_info=True)
            await publish({"type": "error", "message": str(e) or type(e).__name__})
            final = {
                "success": False,
                "error": str(e) or type(e).__name__,
                "duration": int((time.perf_counter() - start) * 1000),
            }
        final["done"] = True
        await publish(final)
        await publish(_DONE)

    task = asyncio.create_task(worker())
    _running.add(task)
    task.add_done_callback(_running.discard)
    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield format_event(item)
    finally:
        disconnected.set()
        if not task.done():
            logger.info("Stream closed before refresh finished; refresh continues")


def sse_response(events: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)
