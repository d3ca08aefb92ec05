"""Message store functions.

Bodies are stored gzip-compressed. Receipt timestamps only ever move from
unset to set.
"""

import gzip
import time

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parley.models import Message, User
from parley.schemas.records import MessageRecord

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def compress_content(content: str) -> bytes:
    return gzip.compress(content.encode("utf-8"))


def decompress_content(blob: bytes) -> str:
    return gzip.decompress(blob).decode("utf-8")


def _record(message: Message, sender_username: str | None = None) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        sender_id=message.sender_id,
        sender_username=sender_username,
        chat_id=message.chat_id,
        content=decompress_content(message.content),
        sent_at=message.sent_at,
        delivered_at=message.delivered_at,
        read_at=message.read_at,
        is_encrypted=message.is_encrypted,
        message_type=message.message_type,
    )


async def send_message(
    db: AsyncSession,
    sender_id: int,
    chat_id: int,
    content: str,
    message_type: str = "text",
    is_encrypted: bool = False,
) -> MessageRecord:
    message = Message(
        sender_id=sender_id,
        chat_id=chat_id,
        content=compress_content(content),
        sent_at=int(time.time()),
        delivered_at=None,
        read_at=None,
        is_encrypted=is_encrypted,
        message_type=message_type,
    )
    db.add(message)
    await db.flush()
    return _record(message)


async def get_chat_messages(
    db: AsyncSession,
    chat_id: int,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> list[MessageRecord]:
    """A page of messages, newest first."""
    result = await db.execute(
        select(Message, User.username)
        .join(User, User.id == Message.sender_id)
        .where(Message.chat_id == chat_id)
        .order_by(Message.sent_at.desc(), Message.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [_record(message, username) for message, username in result.all()]


async def mark_chat_read(db: AsyncSession, chat_id: int, reader_id: int) -> int:
    """Stamp delivery and read receipts on other members' messages.

    Returns how many messages were newly marked read.
    """
    now = int(time.time())
    from_others = (Message.chat_id == chat_id, Message.sender_id != reader_id)
    await db.execute(
        update(Message).where(*from_others, Message.delivered_at.is_(None)).values(delivered_at=now)
    )
    result = await db.execute(
        update(Message).where(*from_others, Message.read_at.is_(None)).values(read_at=now)
    )
    return result.rowcount
