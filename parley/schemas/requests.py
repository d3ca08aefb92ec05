"""Pydantic schemas for request bodies.

Handlers validate the decoded body (JSON or form) against one of these.
Failures are turned into API error codes by ``parley.api.common.parse_request``:

- a validator that raises ``PydanticCustomError`` names the code itself;
- a missing field is ``MISSING_FIELD``;
- anything else uses the model's ``error_codes`` entry for the field, or
  ``VALIDATION_ERROR``.
"""

from typing import Annotated, Any, ClassVar, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from parley.models.chat import ROLE_MEMBER
from parley.models.message import MAX_MESSAGE_LENGTH

USERNAME_PATTERN = r"^[A-Za-z0-9_-]+$"
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
MAX_GROUP_NAME_LENGTH = 100


def _reject_bool(value: Any) -> Any:
    # JSON true/false would otherwise coerce to 1/0
    if isinstance(value, bool):
        raise ValueError("expected an integer id")
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _required(value: str) -> str:
    if not value:
        raise PydanticCustomError("MISSING_FIELD", "Missing required field")
    return value


def check_password_strength(value: str) -> str:
    """8-128 characters with at least one letter and one digit."""
    if not PASSWORD_MIN_LENGTH <= len(value) <= PASSWORD_MAX_LENGTH:
        raise ValueError(f"must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters")
    if not any(c.isalpha() for c in value) or not any(c.isdigit() for c in value):
        raise ValueError("must contain a letter and a digit")
    return value


def check_email(value: str) -> str:
    """Exactly one '@', a non-empty local part and a dotted domain."""
    if value.count("@") != 1:
        raise ValueError("must contain exactly one '@'")
    local, domain = value.split("@")
    labels = domain.split(".")
    if not local or len(labels) < 2 or any(not label for label in labels):
        raise ValueError("must look like name@example.com")
    return value


Identifier = Annotated[int, BeforeValidator(_reject_bool)]
Username = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=3, max_length=32, pattern=USERNAME_PATTERN),
]
Text = Annotated[str, StringConstraints(strip_whitespace=True)]
OptionalText = Annotated[Text | None, BeforeValidator(_blank_to_none)]
Email = OptionalText


class RequestModel(BaseModel):
    """Base for request bodies; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    error_codes: ClassVar[dict[str, str]] = {}


class RegisterRequest(RequestModel):
    """Request for account registration."""

    error_codes: ClassVar[dict[str, str]] = {
        "username": "INVALID_USERNAME",
        "password": "INVALID_PASSWORD",
        "email": "INVALID_EMAIL",
    }

    username: Username
    password: Annotated[str, Field(description="8-128 characters, a letter and a digit")]
    email: Email = None
    password_confirm: str | None = None

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        return check_email(value) if value is not None else None

    @model_validator(mode="after")
    def _confirmation_matches(self) -> "RegisterRequest":
        if self.password_confirm is not None and self.password_confirm != self.password:
            raise PydanticCustomError("PASSWORD_MISMATCH", "Passwords do not match")
        return self


class LoginRequest(RequestModel):
    """Request for login on either listener."""

    username: Text
    # Passwords are taken verbatim; whitespace is significant
    password: str
    remember_me: bool = False

    @field_validator("username", "password")
    @classmethod
    def _present(cls, value: str) -> str:
        return _required(value)


class ChatRequest(RequestModel):
    """Request naming a chat, e.g. to mark it read."""

    error_codes: ClassVar[dict[str, str]] = {"chat_id": "INVALID_CHAT_ID"}

    chat_id: Identifier


class SendMessageRequest(ChatRequest):
    """Request for sending a message."""

    error_codes: ClassVar[dict[str, str]] = {
        "chat_id": "INVALID_CHAT_ID",
        "message_type": "INVALID_MESSAGE_TYPE",
    }

    content: str = Field(default=None, validate_default=True)
    message_type: Literal["text", "image", "file"] = "text"
    is_encrypted: bool = False

    @field_validator("content", mode="before")
    @classmethod
    def _content_bounds(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PydanticCustomError("EMPTY_MESSAGE", "Message content cannot be empty")
        if isinstance(value, str) and len(value) > MAX_MESSAGE_LENGTH:
            raise PydanticCustomError(
                "MESSAGE_TOO_LONG",
                "Message content exceeds {limit} characters",
                {"limit": MAX_MESSAGE_LENGTH},
            )
        return value

    @field_validator("message_type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> Any:
        return value or "text"


class DirectChatRequest(RequestModel):
    """Request for a direct chat with another user, by id or by name."""

    error_codes: ClassVar[dict[str, str]] = {"user_id": "INVALID_USER_ID"}

    user_id: Annotated[Identifier | None, BeforeValidator(_blank_to_none)] = None
    username: OptionalText = None

    @model_validator(mode="after")
    def _has_target(self) -> "DirectChatRequest":
        if self.user_id is None and self.username is None:
            raise PydanticCustomError("MISSING_FIELD", "Provide a username or user_id")
        return self


class CreateGroupRequest(RequestModel):
    """Request for creating a group chat."""

    error_codes: ClassVar[dict[str, str]] = {"members": "INVALID_USER_ID"}

    name: Text
    description: OptionalText = None
    members: list[Identifier] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_bounds(cls, value: str) -> str:
        _required(value)
        if len(value) > MAX_GROUP_NAME_LENGTH:
            raise PydanticCustomError(
                "INVALID_GROUP_NAME",
                "Group name must be at most {limit} characters",
                {"limit": MAX_GROUP_NAME_LENGTH},
            )
        return value

    @field_validator("members", mode="before")
    @classmethod
    def _members_list(cls, value: Any) -> Any:
        if value is None or value == "":
            return []
        if not isinstance(value, list):
            raise PydanticCustomError("VALIDATION_ERROR", "members must be a list of user ids")
        return value


class MemberRequest(RequestModel):
    """Request for adding a user to a group."""

    error_codes: ClassVar[dict[str, str]] = {
        "user_id": "INVALID_USER_ID",
        "role": "INVALID_ROLE",
    }

    user_id: Identifier
    role: Literal["admin", "member"] = ROLE_MEMBER

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, value: Any) -> Any:
        return value or ROLE_MEMBER


class TargetUserRequest(RequestModel):
    """Request acting on one user: moderation, or removal from a group."""

    error_codes: ClassVar[dict[str, str]] = {"user_id": "INVALID_USER_ID"}

    user_id: Identifier
    reason: OptionalText = None


class ProfileUpdateRequest(RequestModel):
    """Request for changing username and/or email."""

    error_codes: ClassVar[dict[str, str]] = {
        "username": "INVALID_USERNAME",
        "email": "INVALID_EMAIL",
    }

    username: Annotated[Username | None, BeforeValidator(_blank_to_none)] = None
    email: Email = None

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        return check_email(value) if value is not None else None

    @model_validator(mode="after")
    def _has_change(self) -> "ProfileUpdateRequest":
        if self.username is None and self.email is None:
            raise PydanticCustomError("MISSING_FIELD", "Provide a username or email to update")
        return self


class PasswordChangeRequest(RequestModel):
    """Request for a password change.

    The checks run in a fixed order: confirmation, reuse, then strength.
    """

    current_password: str
    new_password: str
    confirm_password: str

    @field_validator("current_password", "new_password", "confirm_password")
    @classmethod
    def _present(cls, value: str) -> str:
        return _required(value)

    @model_validator(mode="after")
    def _acceptable(self) -> "PasswordChangeRequest":
        if self.new_password != self.confirm_password:
            raise PydanticCustomError("PASSWORD_MISMATCH", "New passwords do not match")
        if self.new_password == self.current_password:
            raise PydanticCustomError(
                "SAME_PASSWORD", "New password must differ from the current one"
            )
        try:
            check_password_strength(self.new_password)
        except ValueError as e:
            raise PydanticCustomError(
                "PASSWORD_TOO_WEAK", "New password {reason}", {"reason": str(e)}
            ) from e
        return self
