"""Request and connection deadlines.

Two independent policies:

- ``RequestTimeoutMiddleware`` answers 408 when a request has not started
  its response within budget, and cancels the handler; the connection
  itself stays up.
- ``StagedTimeoutMiddleware`` wraps the whole ASGI exchange. Past the first
  window the connection is put into draining mode (any response still sent
  carries ``Connection: close``); past the grace window the exchange is
  cancelled and the connection dropped.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi import status
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from parley.core.errors import error_response

if TYPE_CHECKING:
    from parley.state import AppState

logger = logging.getLogger(__name__)


class RequestTimeoutMiddleware:
    """Return 408 REQUEST_TIMEOUT when the downstream stack is too slow.

    The budget covers the time until the response starts, so an event
    stream that has begun is not cut off. On expiry the downstream task is
    cancelled, which rolls back any store session the handler holds.
    """

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        self.app = app
        self.state = state

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        timeout = self.state.config.snapshot().request_timeout_seconds
        started = asyncio.Event()

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                started.set()
            await send(message)

        task = asyncio.ensure_future(self.app(scope, receive, send_wrapper))
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait(
                {task, waiter}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if not started.is_set() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.warning(f"Request to {scope.get('path')} timed out after {timeout}s")
            response = error_response(
                "REQUEST_TIMEOUT",
                "The request took too long to process",
                status.HTTP_408_REQUEST_TIMEOUT,
            )
            await response(scope, receive, send)
            return

        await task


class ConnectionDropped(Exception):
    """Raised to make the server abort a connection that outlived its grace window."""


class StagedTimeoutMiddleware:
    """Pure ASGI middleware applying the two-stage connection deadline."""

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        self.app = app
        self.state = state

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        settings = self.state.config.snapshot()
        draining = False

        async def send_wrapper(message: Message) -> None:
            if draining and message["type"] == "http.response.start":
                headers = [
                    (k, v) for k, v in message.get("headers", []) if k.lower() != b"connection"
                ]
                headers.append((b"connection", b"close"))
                message = {**message, "headers": headers}
            await send(message)

        task = asyncio.ensure_future(self.app(scope, receive, send_wrapper))
        try:
            done, _ = await asyncio.wait({task}, timeout=settings.connection_timeout_seconds)
            if not done:
                draining = True
                logger.warning(
                    f"Connection for {scope.get('path')} exceeded "
                    f"{settings.connection_timeout_seconds}s, draining"
                )
                done, _ = await asyncio.wait({task}, timeout=settings.connection_grace_seconds)
            if not done:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                raise ConnectionDropped(f"Connection for {scope.get('path')} dropped after grace")
        except asyncio.CancelledError:
            task.cancel()
            raise

        # Re-raise anything the app raised
        task.result()
