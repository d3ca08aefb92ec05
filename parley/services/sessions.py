"""Session store functions.

A session row is the revocation handle for a token: the token embeds the
session_id, and deleting the row revokes the token before its expiry.
"""

import time
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.models import User, UserSession
from parley.schemas.records import SessionRecord


async def create_session(
    db: AsyncSession,
    user_id: int,
    lifetime_seconds: int,
    ip_address: str | None = None,
) -> SessionRecord:
    """Mint a new session with a random UUID handle."""
    now = int(time.time())
    session = UserSession(
        session_id=str(uuid.uuid4()),
        user_id=user_id,
        created_at=now,
        expires_at=now + lifetime_seconds,
        last_activity=now,
        ip_address=ip_address,
    )
    db.add(session)
    await db.flush()
    return SessionRecord.model_validate(session)


async def get_live_session(db: AsyncSession, session_id: str) -> SessionRecord | None:
    """Unexpired session belonging to a user who is not banned."""
    result = await db.execute(
        select(UserSession)
        .join(User, User.id == UserSession.user_id)
        .where(
            UserSession.session_id == session_id,
            UserSession.expires_at > int(time.time()),
            User.is_banned.is_(False),
        )
    )
    session = result.scalar_one_or_none()
    return SessionRecord.model_validate(session) if session is not None else None


async def touch_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(
        update(UserSession)
        .where(UserSession.session_id == session_id)
        .values(last_activity=int(time.time()))
    )


async def delete_session(db: AsyncSession, session_id: str) -> bool:
    result = await db.execute(delete(UserSession).where(UserSession.session_id == session_id))
    return result.rowcount > 0


async def delete_user_sessions(
    db: AsyncSession,
    user_id: int,
    keep_session_id: str | None = None,
) -> int:
    """Delete every session of a user, optionally sparing one."""
    stmt = delete(UserSession).where(UserSession.user_id == user_id)
    if keep_session_id is not None:
        stmt = stmt.where(UserSession.session_id != keep_session_id)
    result = await db.execute(stmt)
    return result.rowcount


async def cleanup_expired_sessions(db: AsyncSession) -> int:
    """Delete sessions past their expiry. Returns the number removed."""
    result = await db.execute(delete(UserSession).where(UserSession.expires_at <= int(time.time())))
    return result.rowcount
