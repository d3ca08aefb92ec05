"""Server-sent event stream for a signed-in user."""

import asyncio
import json
import time
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.responses import Response

from parley.core.logging import get_logger
from parley.schemas.auth import TokenClaims
from parley.services.broadcaster import Broadcaster

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("events")

KEEPALIVE_SECONDS = 15.0
# Sent once so EventSource clients reconnect promptly when a stream ends
RETRY_MILLISECONDS = 3000


def format_event(event: dict) -> str:
    return f"event: {event.get('type', 'message')}\ndata: {json.dumps(event)}\n\n"


async def event_stream(
    request: Request,
    broadcaster: Broadcaster,
    user_id: int,
    max_duration: float,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield a user's events as SSE frames.

    The stream ends on client disconnect or after ``max_duration`` seconds,
    whichever comes first, so it never outlives the connection deadline.
    """
    queue = await broadcaster.subscribe(user_id)
    deadline = time.monotonic() + max_duration
    try:
        yield f"retry: {RETRY_MILLISECONDS}\n\n"
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=min(keepalive, remaining))
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_event(event)
    finally:
        await broadcaster.unsubscribe(user_id, queue)
        logger.debug(f"Event stream for user {user_id} closed")


async def stream_events(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/events"""
    settings = state.config.snapshot()
    # Finish inside the first connection window so the stream ends cleanly
    max_duration = max(1.0, settings.connection_timeout_seconds - 1)
    return StreamingResponse(
        event_stream(request, state.broadcaster, claims.user_id, max_duration),
        media_type="text/event-stream",
        headers={
            "X-Accel-Buffering": "no",
        },
    )
