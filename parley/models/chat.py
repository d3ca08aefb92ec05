"""Chat and membership models.

Direct messages are two-member chats of kind "direct" where both members
are admins; there is no separate DM table.
"""

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from parley.core.database import Base

CHAT_KIND_DIRECT = "direct"
CHAT_KIND_GROUP = "group"

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


class Chat(Base):
    __tablename__ = "chats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(10), nullable=False, default=CHAT_KIND_GROUP)

    # "<low_user_id>:<high_user_id>" for direct chats; one row per pair
    direct_key: Mapped[str | None] = mapped_column(String(41), nullable=True, unique=True)

    def __repr__(self) -> str:
        return f"<Chat {self.id} {self.kind}>"


class ChatMember(Base):
    __tablename__ = "chat_members"
    __table_args__ = (UniqueConstraint("chat_id", "user_id", name="uq_chat_members_chat_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    joined_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=ROLE_MEMBER)
