"""Chat, group and membership store functions."""

import time

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from parley.core.errors import ForbiddenError, NotFoundError
from parley.models import Chat, ChatMember, Message, User
from parley.models.chat import CHAT_KIND_DIRECT, CHAT_KIND_GROUP, ROLE_ADMIN, ROLE_MEMBER
from parley.schemas.records import ChatRecord, ChatSummary, MemberRecord


def direct_key(user_a: int, user_b: int) -> str:
    """Order-independent key identifying the direct chat between two users."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


async def get_chat(db: AsyncSession, chat_id: int) -> ChatRecord | None:
    result = await db.execute(select(Chat).where(Chat.id == chat_id))
    chat = result.scalar_one_or_none()
    return ChatRecord.model_validate(chat) if chat is not None else None


async def get_member_role(db: AsyncSession, chat_id: int, user_id: int) -> str | None:
    """Role of user in chat, or None if not a member."""
    result = await db.execute(
        select(ChatMember.role).where(ChatMember.chat_id == chat_id, ChatMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


def _add_member_row(db: AsyncSession, chat_id: int, user_id: int, role: str, now: int) -> None:
    db.add(ChatMember(chat_id=chat_id, user_id=user_id, role=role, joined_at=now))


async def get_or_create_direct_chat(
    db: AsyncSession,
    user_id: int,
    other_id: int,
    name: str,
) -> tuple[ChatRecord, bool]:
    """Return the direct chat between two users, creating it on first use.

    Idempotent for either argument order. The lookup and insert run on the
    single store connection inside one transaction; the unique direct_key
    column backs this up at the schema level.
    """
    key = direct_key(user_id, other_id)
    result = await db.execute(select(Chat).where(Chat.direct_key == key))
    existing = result.scalar_one_or_none()
    if existing is not None:
        return ChatRecord.model_validate(existing), False

    now = int(time.time())
    chat = Chat(
        name=name,
        created_by=user_id,
        created_at=now,
        description=None,
        kind=CHAT_KIND_DIRECT,
        direct_key=key,
    )
    db.add(chat)
    await db.flush()

    # Both sides of a direct chat hold the admin role
    _add_member_row(db, chat.id, user_id, ROLE_ADMIN, now)
    _add_member_row(db, chat.id, other_id, ROLE_ADMIN, now)
    await db.flush()
    return ChatRecord.model_validate(chat), True


async def create_group(
    db: AsyncSession,
    creator_id: int,
    name: str,
    description: str | None = None,
    member_ids: list[int] | None = None,
) -> tuple[ChatRecord, list[int]]:
    """Create a group chat with the creator as admin.

    Unknown or duplicate member ids are skipped. Returns the chat and the ids
    actually added besides the creator.
    """
    now = int(time.time())
    chat = Chat(
        name=name,
        created_by=creator_id,
        created_at=now,
        description=description,
        kind=CHAT_KIND_GROUP,
        direct_key=None,
    )
    db.add(chat)
    await db.flush()
    _add_member_row(db, chat.id, creator_id, ROLE_ADMIN, now)

    added: list[int] = []
    wanted = {m for m in (member_ids or []) if m != creator_id}
    if wanted:
        result = await db.execute(select(User.id).where(User.id.in_(wanted)))
        for member_id in sorted(result.scalars().all()):
            _add_member_row(db, chat.id, member_id, ROLE_MEMBER, now)
            added.append(member_id)

    await db.flush()
    return ChatRecord.model_validate(chat), added


async def add_member(db: AsyncSession, chat_id: int, user_id: int, role: str = ROLE_MEMBER) -> None:
    _add_member_row(db, chat_id, user_id, role, int(time.time()))
    await db.flush()


async def remove_member(db: AsyncSession, chat_id: int, user_id: int) -> bool:
    result = await db.execute(
        delete(ChatMember).where(ChatMember.chat_id == chat_id, ChatMember.user_id == user_id)
    )
    return result.rowcount > 0


async def list_members(db: AsyncSession, chat_id: int) -> list[MemberRecord]:
    result = await db.execute(
        select(ChatMember.user_id, User.username, ChatMember.role, ChatMember.joined_at)
        .join(User, User.id == ChatMember.user_id)
        .where(ChatMember.chat_id == chat_id)
        .order_by(ChatMember.joined_at, ChatMember.user_id)
    )
    return [MemberRecord.model_validate(row) for row in result.all()]


async def list_member_ids(db: AsyncSession, chat_id: int) -> list[int]:
    result = await db.execute(select(ChatMember.user_id).where(ChatMember.chat_id == chat_id))
    return list(result.scalars().all())


async def list_user_chats(
    db: AsyncSession,
    user_id: int,
    kind: str | None = None,
) -> list[ChatSummary]:
    """Chats the user belongs to, most recently active first."""
    mine = aliased(ChatMember)
    counted = aliased(ChatMember)

    member_count = (
        select(func.count(counted.id)).where(counted.chat_id == Chat.id).scalar_subquery()
    )
    last_message_at = (
        select(func.max(Message.sent_at)).where(Message.chat_id == Chat.id).scalar_subquery()
    )
    unread_count = (
        select(func.count(Message.id))
        .where(
            Message.chat_id == Chat.id,
            Message.sender_id != user_id,
            Message.read_at.is_(None),
        )
        .scalar_subquery()
    )
    activity = func.coalesce(last_message_at, Chat.created_at)

    stmt = (
        select(
            Chat,
            mine.role,
            member_count.label("member_count"),
            last_message_at.label("last_message_at"),
            unread_count.label("unread_count"),
        )
        .join(mine, mine.chat_id == Chat.id)
        .where(mine.user_id == user_id)
        .order_by(activity.desc(), Chat.id.desc())
    )
    if kind is not None:
        stmt = stmt.where(Chat.kind == kind)

    result = await db.execute(stmt)
    summaries = []
    for chat, role, count, last_at, unread in result.all():
        summaries.append(
            ChatSummary(
                id=chat.id,
                name=chat.name,
                kind=chat.kind,
                description=chat.description,
                created_at=chat.created_at,
                role=role,
                member_count=count or 0,
                last_message_at=last_at,
                unread_count=unread or 0,
            )
        )
    return summaries


async def require_member(db: AsyncSession, chat_id: int, user_id: int) -> tuple[ChatRecord, str]:
    """The chat and the caller's role in it.

    Raises NotFoundError CHAT_NOT_FOUND or ForbiddenError NOT_A_MEMBER.
    """
    chat = await get_chat(db, chat_id)
    if chat is None:
        raise NotFoundError("CHAT_NOT_FOUND", "Chat not found")
    role = await get_member_role(db, chat_id, user_id)
    if role is None:
        raise ForbiddenError("NOT_A_MEMBER", "You are not a member of this chat")
    return chat, role
