"""Account settings: password change and sign-out everywhere."""

from typing import TYPE_CHECKING

from fastapi import Request
from starlette.responses import Response

from parley.api.auth import clear_auth_cookie
from parley.api.common import read_request, success
from parley.core.logging import get_logger
from parley.schemas.auth import TokenClaims
from parley.schemas.requests import PasswordChangeRequest
from parley.services import sessions
from parley.services.auth import AuthService

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("settings")


async def change_password(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/settings/password {current_password, new_password, confirm_password}

    The session making the request survives; every other one is revoked.
    """
    body = await read_request(request, PasswordChangeRequest)

    async with state.db() as db:
        revoked = await AuthService(db).change_password(
            user_id,
            body.current_password,
            body.new_password,
            keep_session_id=claims.session_id,
        )

    return success("Password changed", sessions_revoked=revoked)


async def logout_all(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/settings/logout-all"""
    async with state.db() as db:
        revoked = await sessions.delete_user_sessions(db, user_id)

    logger.info(f"User {user_id} signed out of {revoked} sessions")
    response = success("Logged out of all sessions", sessions_revoked=revoked)
    clear_auth_cookie(response, request)
    return response
