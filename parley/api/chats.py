"""Chat listing and direct-chat creation."""

from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.responses import Response

from parley.api.common import read_request, success
from parley.core.errors import NotFoundError, ValidationError
from parley.schemas.auth import TokenClaims
from parley.schemas.requests import DirectChatRequest
from parley.services import chats, users

if TYPE_CHECKING:
    from parley.state import AppState


async def list_chats(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/chats - every chat of the caller, most recently active first."""
    async with state.db() as db:
        summaries = await chats.list_user_chats(db, claims.user_id)
    return success(chats=[s.model_dump() for s in summaries])


async def create_direct_chat(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/chats {username | user_id}

    Returns the existing direct chat with that user if there is one.
    """
    body = await read_request(request, DirectChatRequest)

    async with state.db() as db:
        if body.user_id is not None:
            other = await users.get_user_by_id(db, body.user_id)
        else:
            other = await users.get_user_by_username(db, body.username)

        if other is None:
            raise NotFoundError("USER_NOT_FOUND", "User not found")
        if other.id == user_id:
            raise ValidationError("INVALID_TARGET", "Cannot start a chat with yourself")

        name = " & ".join(sorted((claims.sub, other.username)))
        chat, created = await chats.get_or_create_direct_chat(db, user_id, other.id, name)

    if created:
        state.broadcaster.publish(other.id, {"type": "chat_created", "chat_id": chat.id})

    return success(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        chat_id=chat.id,
        name=chat.name,
        kind=chat.kind,
        created=created,
    )
