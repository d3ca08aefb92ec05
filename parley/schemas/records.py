"""Immutable snapshots handed out by the store functions.

Handlers never see ORM instances; they get these frozen copies instead.
"""

from pydantic import BaseModel, ConfigDict


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserRecord(_Record):
    id: int
    username: str
    password_hash: str
    email: str | None = None
    created_at: int
    last_login: int | None = None
    is_admin: bool = False
    is_banned: bool = False
    ban_reason: str | None = None
    banned_at: int | None = None
    banned_by: int | None = None

    def public(self) -> dict:
        """Fields safe to return to clients."""
        return self.model_dump(exclude={"password_hash"})


class SessionRecord(_Record):
    session_id: str
    user_id: int
    created_at: int
    expires_at: int
    last_activity: int
    ip_address: str | None = None


class ChatRecord(_Record):
    id: int
    name: str
    created_by: int | None = None
    created_at: int
    description: str | None = None
    kind: str


class MemberRecord(_Record):
    user_id: int
    username: str
    role: str
    joined_at: int


class MessageRecord(_Record):
    id: int
    sender_id: int
    sender_username: str | None = None
    chat_id: int
    content: str
    sent_at: int
    delivered_at: int | None = None
    read_at: int | None = None
    is_encrypted: bool = False
    message_type: str = "text"


class ChatSummary(_Record):
    """A chat as listed for one member."""

    id: int
    name: str
    kind: str
    description: str | None = None
    created_at: int
    role: str
    member_count: int
    last_message_at: int | None = None
    unread_count: int = 0
