"""Health and public configuration endpoints (Open tier)."""

from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.responses import Response

from parley.api.common import success
from parley.core.database import check_db_connection
from parley.core.errors import error_response
from parley.models.message import MAX_MESSAGE_LENGTH
from parley.services.messages import MAX_PAGE_SIZE

if TYPE_CHECKING:
    from parley.state import AppState


async def health(request: Request, state: "AppState") -> Response:
    """GET /health

    Returns 503 if the database is unavailable.
    """
    if not await check_db_connection(state.session_maker):
        return error_response(
            "DATABASE_UNAVAILABLE",
            "Database is unreachable",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return success(
        health="healthy",
        version=state.config.snapshot().app_version,
        uptime_seconds=round(state.metrics.uptime_seconds, 3),
        database="connected",
    )


async def public_config(request: Request, state: "AppState") -> Response:
    """GET /api/config"""
    settings = state.config.snapshot()
    return success(
        config={
            **settings.public_view(),
            "max_message_length": MAX_MESSAGE_LENGTH,
            "max_page_size": MAX_PAGE_SIZE,
        }
    )
