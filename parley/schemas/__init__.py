# Parley Schemas
from parley.schemas.auth import TokenClaims
from parley.schemas.records import (
    ChatRecord,
    ChatSummary,
    MemberRecord,
    MessageRecord,
    SessionRecord,
    UserRecord,
)

__all__ = [
    "ChatRecord",
    "ChatSummary",
    "MemberRecord",
    "MessageRecord",
    "SessionRecord",
    "TokenClaims",
    "UserRecord",
]
