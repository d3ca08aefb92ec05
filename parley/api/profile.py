"""Profile handlers."""

from typing import TYPE_CHECKING

from fastapi import Request
from starlette.responses import Response

from parley.api.common import read_request, success
from parley.core.errors import ConflictError, NotFoundError
from parley.core.logging import get_logger
from parley.schemas.auth import TokenClaims
from parley.schemas.requests import ProfileUpdateRequest
from parley.services import users

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("profile")


async def get_profile(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/profile"""
    async with state.db() as db:
        user = await users.get_user_by_id(db, claims.user_id)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", "User not found")
    return success(user=user.public())


async def update_profile(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/profile/update {username?, email?}

    Existing tokens keep the old username in their ``sub`` claim until the
    next login; handlers identify callers by ``user_id``.
    """
    body = await read_request(request, ProfileUpdateRequest)
    username, email = body.username, body.email

    async with state.db() as db:
        current = await users.get_user_by_id(db, user_id)
        if current is None:
            raise NotFoundError("USER_NOT_FOUND", "User not found")

        if username is not None and username != current.username:
            if await users.get_user_by_username(db, username) is not None:
                raise ConflictError("USERNAME_TAKEN", "Username is already taken")
        if email is not None and email != current.email:
            if await users.get_user_by_email(db, email) is not None:
                raise ConflictError("EMAIL_TAKEN", "Email is already registered")

        updated = await users.update_profile(db, user_id, username=username, email=email)

    logger.info(f"User {user_id} updated their profile")
    return success("Profile updated", user=updated.public())
