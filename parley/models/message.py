"""Chat message model."""

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from parley.core.database import Base

MAX_MESSAGE_LENGTH = 10_000


class Message(Base):
    """A message stored gzip-compressed.

    Only delivered_at and read_at change after insert, and each is set at
    most once.
    """

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chat_sent", "chat_id", "sent_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    chat_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    sent_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    delivered_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    read_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_encrypted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")
