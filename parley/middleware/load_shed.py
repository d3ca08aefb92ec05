"""Shed load once too many requests are in flight."""

import logging
from typing import TYPE_CHECKING

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from parley.core.errors import error_response

if TYPE_CHECKING:
    from parley.state import AppState

logger = logging.getLogger(__name__)


class LoadShedMiddleware(BaseHTTPMiddleware):
    """Answer 503 while max_connections requests are already being served."""

    def __init__(self, app: ASGIApp, state: "AppState") -> None:
        super().__init__(app)
        self.state = state
        self.in_flight = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        limit = self.state.config.snapshot().max_connections
        if self.in_flight >= limit:
            logger.warning(f"Shedding request to {request.url.path}: {self.in_flight} in flight")
            return error_response(
                "SERVER_BUSY",
                "Server is busy. Please try again later.",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": "1"},
            )

        self.in_flight += 1
        try:
            return await call_next(request)
        finally:
            self.in_flight -= 1
