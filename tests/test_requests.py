"""Tests for request body schemas and their mapping to API error codes."""

import pytest

from parley.api.common import parse_request, to_int
from parley.core.errors import ValidationError
from parley.schemas.requests import (
    CreateGroupRequest,
    DirectChatRequest,
    LoginRequest,
    MemberRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    SendMessageRequest,
    TargetUserRequest,
)


def _code(model, payload) -> str:
    with pytest.raises(ValidationError) as exc_info:
        parse_request(model, payload)
    return exc_info.value.code


class TestParseRequest:
    """Tests for parse_request error mapping."""

    def test_missing_field_names_the_field(self):
        """Test that an absent required field maps to MISSING_FIELD."""
        with pytest.raises(ValidationError) as exc_info:
            parse_request(LoginRequest, {"password": "password123"})

        assert exc_info.value.code == "MISSING_FIELD"
        assert "username" in exc_info.value.message

    def test_empty_required_string_is_missing(self):
        """Test that an empty password counts as missing."""
        assert _code(LoginRequest, {"username": "alice", "password": ""}) == "MISSING_FIELD"

    def test_field_error_uses_model_code(self):
        """Test that a type error on a field uses that field's code."""
        assert _code(TargetUserRequest, {"user_id": "abc"}) == "INVALID_USER_ID"

    def test_custom_error_carries_its_code(self):
        """Test that validator-raised codes pass through unchanged."""
        payload = {"chat_id": 1, "content": "x" * 10_001}

        assert _code(SendMessageRequest, payload) == "MESSAGE_TOO_LONG"

    def test_unknown_keys_ignored(self):
        """Test that extra keys in the body are dropped."""
        body = parse_request(TargetUserRequest, {"user_id": 3, "extra": "x"})

        assert body.user_id == 3

    def test_form_strings_coerced(self):
        """Test that urlencoded form values validate like JSON."""
        body = parse_request(
            LoginRequest, {"username": " alice ", "password": " pw ", "remember_me": "on"}
        )

        assert body.username == "alice"
        assert body.password == " pw "
        assert body.remember_me is True


class TestIdentifiers:
    """Tests for integer id parsing."""

    @pytest.mark.parametrize("value", [True, False, "--5", "²", "", None, [1]])
    def test_rejected(self, value):
        """Test that booleans and malformed strings never become ids."""
        with pytest.raises(ValidationError) as exc_info:
            to_int(value, "chat_id", "INVALID_CHAT_ID")

        assert exc_info.value.code == "INVALID_CHAT_ID"

    @pytest.mark.parametrize(("value", "expected"), [(7, 7), ("42", 42), ("-3", -3)])
    def test_accepted(self, value, expected):
        assert to_int(value, "chat_id", "INVALID_CHAT_ID") == expected

    def test_bool_id_in_body_rejected(self):
        """Test that JSON true is not read as user 1."""
        assert _code(MemberRequest, {"user_id": True}) == "INVALID_USER_ID"


class TestRegisterRequest:
    """Tests for RegisterRequest."""

    def test_valid(self):
        body = parse_request(
            RegisterRequest,
            {"username": "dave_1", "password": "password123", "email": "d@example.com"},
        )

        assert body.username == "dave_1"
        assert body.email == "d@example.com"

    def test_blank_email_is_none(self):
        body = parse_request(
            RegisterRequest, {"username": "dave", "password": "password123", "email": "  "}
        )

        assert body.email is None

    @pytest.mark.parametrize(
        ("payload", "code"),
        [
            ({"username": "x" * 33, "password": "password123"}, "INVALID_USERNAME"),
            ({"username": "dave", "password": "p1" * 65}, "INVALID_PASSWORD"),
            ({"username": "dave", "password": "12345678"}, "INVALID_PASSWORD"),
            ({"username": "dave", "password": "password123", "email": "a@b"}, "INVALID_EMAIL"),
            ({"username": "dave", "password": "password123", "email": "a@@b.c"}, "INVALID_EMAIL"),
        ],
    )
    def test_rejections(self, payload, code):
        assert _code(RegisterRequest, payload) == code


class TestMessageRequests:
    """Tests for SendMessageRequest."""

    def test_defaults(self):
        body = parse_request(SendMessageRequest, {"chat_id": "5", "content": "hi"})

        assert body.chat_id == 5
        assert body.message_type == "text"
        assert body.is_encrypted is False

    def test_empty_message_type_defaults_to_text(self):
        body = parse_request(
            SendMessageRequest, {"chat_id": 5, "content": "hi", "message_type": ""}
        )

        assert body.message_type == "text"

    def test_missing_content_is_empty_message(self):
        assert _code(SendMessageRequest, {"chat_id": 5}) == "EMPTY_MESSAGE"

    def test_non_string_content(self):
        assert _code(SendMessageRequest, {"chat_id": 5, "content": 12}) == "VALIDATION_ERROR"


class TestChatAndGroupRequests:
    """Tests for the chat and group request bodies."""

    def test_direct_chat_needs_a_target(self):
        assert _code(DirectChatRequest, {"user_id": "", "username": " "}) == "MISSING_FIELD"

    def test_direct_chat_by_id_string(self):
        assert parse_request(DirectChatRequest, {"user_id": "9"}).user_id == 9

    def test_group_members_default_empty(self):
        body = parse_request(CreateGroupRequest, {"name": " team ", "members": None})

        assert body.name == "team"
        assert body.members == []

    def test_group_member_ids_validated(self):
        payload = {"name": "team", "members": [2, "x"]}

        assert _code(CreateGroupRequest, payload) == "INVALID_USER_ID"

    def test_blank_group_name_missing(self):
        assert _code(CreateGroupRequest, {"name": "   "}) == "MISSING_FIELD"

    def test_role_defaults_to_member(self):
        assert parse_request(MemberRequest, {"user_id": 2, "role": None}).role == "member"


class TestAccountRequests:
    """Tests for profile and password change bodies."""

    def test_profile_blank_username_ignored(self):
        body = parse_request(ProfileUpdateRequest, {"username": "", "email": "a@b.co"})

        assert body.username is None
        assert body.email == "a@b.co"

    def test_profile_invalid_username(self):
        assert _code(ProfileUpdateRequest, {"username": "no spaces"}) == "INVALID_USERNAME"

    @pytest.mark.parametrize(
        ("payload", "code"),
        [
            (
                {"current_password": "a", "new_password": "b", "confirm_password": "c"},
                "PASSWORD_MISMATCH",
            ),
            (
                {"current_password": "abc12345", "new_password": "abc12345",
                 "confirm_password": "abc12345"},
                "SAME_PASSWORD",
            ),
            (
                {"current_password": "abc12345", "new_password": "weak",
                 "confirm_password": "weak"},
                "PASSWORD_TOO_WEAK",
            ),
            ({"current_password": "abc12345", "new_password": "x1234567"}, "MISSING_FIELD"),
        ],
    )
    def test_password_change_order(self, payload, code):
        """Test that mismatch wins over reuse, which wins over strength."""
        assert _code(PasswordChangeRequest, payload) == code
