# Parley Models
from parley.models.chat import Chat, ChatMember
from parley.models.message import Message
from parley.models.session import UserSession
from parley.models.user import User

__all__ = [
    "Chat",
    "ChatMember",
    "Message",
    "User",
    "UserSession",
]
