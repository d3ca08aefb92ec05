"""Group chat handlers."""

from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.responses import Response

from parley.api.common import parse_request, path_int, read_payload, read_request, success
from parley.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from parley.core.logging import get_logger
from parley.models.chat import CHAT_KIND_DIRECT, CHAT_KIND_GROUP, ROLE_ADMIN
from parley.schemas.auth import TokenClaims
from parley.schemas.records import ChatRecord
from parley.schemas.requests import CreateGroupRequest, MemberRequest, TargetUserRequest
from parley.services import chats, users

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("groups")


def _ensure_group(chat: ChatRecord) -> None:
    if chat.kind == CHAT_KIND_DIRECT:
        raise ValidationError("DIRECT_CHAT_IMMUTABLE", "Direct chat membership cannot be changed")


async def list_groups(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/groups"""
    async with state.db() as db:
        groups = await chats.list_user_chats(db, claims.user_id, kind=CHAT_KIND_GROUP)
    return success(groups=[g.model_dump() for g in groups])


async def create_group(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/groups {name, description?, members?: [user_id, ...]}"""
    body = await read_request(request, CreateGroupRequest)

    async with state.db() as db:
        chat, added = await chats.create_group(
            db,
            creator_id=user_id,
            name=body.name,
            description=body.description,
            member_ids=body.members,
        )

    logger.info(f"User {claims.sub} created group {chat.id} with {len(added)} members")
    state.broadcaster.publish_many(added, {"type": "added_to_group", "chat_id": chat.id})

    return success(
        "Group created",
        status_code=status.HTTP_201_CREATED,
        chat_id=chat.id,
        name=chat.name,
        members=added,
    )


async def list_members(request: Request, state: "AppState", claims: TokenClaims) -> Response:
    """GET /api/groups/:id/members"""
    chat_id = path_int(request, "id", "INVALID_CHAT_ID")
    async with state.db() as db:
        await chats.require_member(db, chat_id, claims.user_id)
        members = await chats.list_members(db, chat_id)
    return success(chat_id=chat_id, members=[m.model_dump() for m in members])


async def add_member(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /api/groups/:id/members {user_id, role?} - group admins only."""
    chat_id = path_int(request, "id", "INVALID_CHAT_ID")
    body = await read_request(request, MemberRequest)
    target_id, role = body.user_id, body.role

    async with state.db() as db:
        chat, my_role = await chats.require_member(db, chat_id, user_id)
        _ensure_group(chat)
        if my_role != ROLE_ADMIN:
            raise ForbiddenError("NOT_GROUP_ADMIN", "Only group admins can add members")

        if await users.get_user_by_id(db, target_id) is None:
            raise NotFoundError("USER_NOT_FOUND", "User not found")
        if await chats.get_member_role(db, chat_id, target_id) is not None:
            raise ConflictError("ALREADY_MEMBER", "User is already a member of this group")

        await chats.add_member(db, chat_id, target_id, role)

    state.broadcaster.publish(target_id, {"type": "added_to_group", "chat_id": chat_id})
    return success(
        "Member added",
        status_code=status.HTTP_201_CREATED,
        chat_id=chat_id,
        user_id=target_id,
        role=role,
    )


async def remove_member(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """DELETE /api/groups/:id/members {user_id}

    Admins may remove anyone; members may only remove themselves.
    """
    chat_id = path_int(request, "id", "INVALID_CHAT_ID")
    payload = await read_payload(request)
    if payload.get("user_id") in (None, "") and request.query_params.get("user_id"):
        payload["user_id"] = request.query_params["user_id"]
    target_id = parse_request(TargetUserRequest, payload).user_id

    async with state.db() as db:
        chat, my_role = await chats.require_member(db, chat_id, user_id)
        _ensure_group(chat)
        if target_id != user_id and my_role != ROLE_ADMIN:
            raise ForbiddenError("NOT_GROUP_ADMIN", "Only group admins can remove other members")

        if not await chats.remove_member(db, chat_id, target_id):
            raise NotFoundError("NOT_A_MEMBER", "User is not a member of this group")

    return success("Member removed", chat_id=chat_id, user_id=target_id)
