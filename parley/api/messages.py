"""Message handlers."""

from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.responses import Response

from parley.api.common import query_int, read_request, success, to_int
from parley.core.errors import ValidationError
from parley.core.logging import get_logger
from parley.schemas.auth import TokenClaims
from parley.schemas.requests import ChatRequest, SendMessageRequest
from parley.services import chats, messages
from parley.services.messages import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("messages")


async def get_messages(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/messages?chat_id=&limit=&offset="""
    raw_chat_id = request.query_params.get("chat_id")
    if not raw_chat_id:
        raise ValidationError("MISSING_FIELD", "Missing required parameter: chat_id")
    chat_id = to_int(raw_chat_id, "chat_id", "INVALID_CHAT_ID")
    limit = query_int(request, "limit", DEFAULT_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE)
    offset = query_int(request, "offset", 0, minimum=0)

    async with state.db() as db:
        await chats.require_member(db, chat_id, claims.user_id)
        page = await messages.get_chat_messages(db, chat_id, limit=limit, offset=offset)

    return success(
        chat_id=chat_id,
        limit=limit,
        offset=offset,
        messages=[m.model_dump() for m in page],
    )


async def send_message(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/messages/send {chat_id, content, message_type?, is_encrypted?}"""
    body = await read_request(request, SendMessageRequest)
    chat_id = body.chat_id

    async with state.db() as db:
        await chats.require_member(db, chat_id, user_id)
        message = await messages.send_message(
            db,
            sender_id=user_id,
            chat_id=chat_id,
            content=body.content,
            message_type=body.message_type,
            is_encrypted=body.is_encrypted,
        )
        member_ids = await chats.list_member_ids(db, chat_id)

    event = {
        "type": "message",
        "message": message.model_copy(update={"sender_username": claims.sub}).model_dump(),
    }
    delivered = state.broadcaster.publish_many(member_ids, event)
    logger.debug(f"Message {message.id} in chat {chat_id} pushed to {delivered} streams")

    return success(
        "Message sent",
        status_code=status.HTTP_201_CREATED,
        message_id=message.id,
        chat_id=chat_id,
        sent_at=message.sent_at,
    )


async def mark_read(request: Request, state: "AppState", user_id: int, claims: TokenClaims) -> Response:
    """POST /api/messages/read {chat_id}"""
    chat_id = (await read_request(request, ChatRequest)).chat_id

    async with state.db() as db:
        await chats.require_member(db, chat_id, user_id)
        marked = await messages.mark_chat_read(db, chat_id, user_id)

    return success(chat_id=chat_id, marked_read=marked)
