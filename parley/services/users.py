"""User store functions."""

import time

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.models import Chat, ChatMember, Message, User, UserSession
from parley.schemas.records import UserRecord
from parley.services.sessions import delete_user_sessions


def _record(user: User | None) -> UserRecord | None:
    return UserRecord.model_validate(user) if user is not None else None


async def get_user_by_id(db: AsyncSession, user_id: int) -> UserRecord | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return _record(result.scalar_one_or_none())


async def get_user_by_username(db: AsyncSession, username: str) -> UserRecord | None:
    result = await db.execute(select(User).where(User.username == username))
    return _record(result.scalar_one_or_none())


async def get_user_by_email(db: AsyncSession, email: str) -> UserRecord | None:
    result = await db.execute(select(User).where(User.email == email))
    return _record(result.scalar_one_or_none())


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(User.id)))
    return result.scalar() or 0


async def create_user(
    db: AsyncSession,
    username: str,
    password_hash: str,
    email: str | None = None,
) -> UserRecord:
    """Insert a user. The first account in an empty store is made admin."""
    is_first = await count_users(db) == 0
    user = User(
        username=username,
        password_hash=password_hash,
        email=email,
        created_at=int(time.time()),
        is_admin=is_first,
        is_banned=False,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return UserRecord.model_validate(user)


async def list_users(db: AsyncSession) -> list[UserRecord]:
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return [UserRecord.model_validate(u) for u in result.scalars().all()]


async def update_last_login(db: AsyncSession, user_id: int) -> None:
    await db.execute(update(User).where(User.id == user_id).values(last_login=int(time.time())))


async def update_profile(
    db: AsyncSession,
    user_id: int,
    username: str | None = None,
    email: str | None = None,
) -> UserRecord | None:
    """Apply whichever of username/email were given."""
    values: dict[str, str] = {}
    if username is not None:
        values["username"] = username
    if email is not None:
        values["email"] = email
    if values:
        await db.execute(update(User).where(User.id == user_id).values(**values))
    return await get_user_by_id(db, user_id)


async def update_password(db: AsyncSession, user_id: int, password_hash: str) -> None:
    await db.execute(update(User).where(User.id == user_id).values(password_hash=password_hash))


async def ban_user(db: AsyncSession, user_id: int, banned_by: int, reason: str | None) -> int:
    """Ban a user and delete all of their sessions in the same transaction.

    Returns the number of sessions revoked.
    """
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            is_banned=True,
            ban_reason=reason,
            banned_at=int(time.time()),
            banned_by=banned_by,
        )
    )
    return await delete_user_sessions(db, user_id)


async def unban_user(db: AsyncSession, user_id: int) -> None:
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(is_banned=False, ban_reason=None, banned_at=None, banned_by=None)
    )


async def set_admin(db: AsyncSession, user_id: int, is_admin: bool) -> int:
    """Grant or revoke admin.

    Revoking also deletes the user's sessions, since their tokens still carry
    the old is_admin claim. Returns the number of sessions revoked.
    """
    await db.execute(update(User).where(User.id == user_id).values(is_admin=is_admin))
    if is_admin:
        return 0
    return await delete_user_sessions(db, user_id)


async def delete_user(db: AsyncSession, user_id: int) -> None:
    """Remove a user with their sessions, memberships and messages."""
    await db.execute(delete(UserSession).where(UserSession.user_id == user_id))
    await db.execute(delete(Message).where(Message.sender_id == user_id))
    await db.execute(delete(ChatMember).where(ChatMember.user_id == user_id))
    await db.execute(update(Chat).where(Chat.created_by == user_id).values(created_by=None))
    await db.execute(update(User).where(User.banned_by == user_id).values(banned_by=None))
    await db.execute(delete(User).where(User.id == user_id))


async def get_store_counts(db: AsyncSession) -> dict[str, int]:
    """Row counts shown on the admin dashboard."""
    now = int(time.time())
    counts = {}
    for name, stmt in (
        ("users", select(func.count(User.id))),
        ("banned_users", select(func.count(User.id)).where(User.is_banned.is_(True))),
        ("admins", select(func.count(User.id)).where(User.is_admin.is_(True))),
        ("active_sessions", select(func.count(UserSession.id)).where(UserSession.expires_at > now)),
        ("chats", select(func.count(Chat.id))),
        ("messages", select(func.count(Message.id))),
    ):
        result = await db.execute(stmt)
        counts[name] = result.scalar() or 0
    return counts
