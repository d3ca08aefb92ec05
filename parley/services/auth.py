"""Account authentication: password hashing, login and registration."""

import logging

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from parley.schemas.auth import TokenClaims
from parley.schemas.records import SessionRecord, UserRecord
from parley.services import sessions, tokens, users

logger = logging.getLogger(__name__)

# Argon2 password hasher with recommended parameters
# Memory: 64 MiB, Time: 3 iterations, Parallelism: 4
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison."""
    try:
        ph.verify(password_hash, password)
        return True
    except VerifyMismatchError:
        return False


class AuthService:
    """Registration, credential checks and session issuance."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(
        self,
        username: str,
        password: str,
        email: str | None = None,
        email_required: bool = False,
    ) -> UserRecord:
        """Create an account from already-validated input.

        The very first account becomes an admin.
        """
        if not email and email_required:
            raise ValidationError("EMAIL_REQUIRED", "An email address is required")

        if await users.get_user_by_username(self.session, username) is not None:
            raise ConflictError("USERNAME_TAKEN", "Username is already taken")
        if email and await users.get_user_by_email(self.session, email) is not None:
            raise ConflictError("EMAIL_TAKEN", "Email is already registered")

        user = await users.create_user(
            self.session,
            username=username,
            password_hash=hash_password(password),
            email=email or None,
        )
        logger.info(f"Registered user {user.username} (id={user.id}, admin={user.is_admin})")
        return user

    async def authenticate(self, username: str, password: str) -> UserRecord:
        """Check credentials and return the account.

        Raises AuthError INVALID_CREDENTIALS for both "no such user" and
        "wrong password" so usernames cannot be enumerated.
        """
        user = await users.get_user_by_username(self.session, username)

        if user is None:
            # Perform a dummy hash to prevent timing attacks
            verify_password(password, hash_password("dummy"))
            raise AuthError("INVALID_CREDENTIALS", "Invalid username or password")

        if not verify_password(password, user.password_hash):
            raise AuthError("INVALID_CREDENTIALS", "Invalid username or password")

        if user.is_banned:
            raise ForbiddenError(
                "USER_BANNED",
                "This account has been banned",
                reason=user.ban_reason,
            )

        return user

    async def start_session(
        self,
        user: UserRecord,
        *,
        signing_key: str,
        lifetime_seconds: int,
        ip_address: str | None,
        user_agent: str | None,
    ) -> tuple[str, TokenClaims, SessionRecord]:
        """Mint a session row and the token that references it."""
        session = await sessions.create_session(
            self.session,
            user_id=user.id,
            lifetime_seconds=lifetime_seconds,
            ip_address=ip_address,
        )
        await users.update_last_login(self.session, user.id)

        claims = tokens.build_claims(
            username=user.username,
            user_id=user.id,
            session_id=session.session_id,
            user_agent=user_agent,
            is_admin=user.is_admin,
            lifetime_seconds=lifetime_seconds,
            now=session.created_at,
        )
        return tokens.encode(claims, signing_key), claims, session

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        keep_session_id: str | None = None,
    ) -> int:
        """Change a password and revoke every other session of the user.

        Returns the number of sessions revoked. Confirmation and strength
        rules are enforced by PasswordChangeRequest before this is called.
        """
        user = await users.get_user_by_id(self.session, user_id)
        if user is None:
            raise NotFoundError("USER_NOT_FOUND", "User not found")

        if not verify_password(current_password, user.password_hash):
            raise ValidationError("INVALID_CURRENT_PASSWORD", "Current password is incorrect")

        await users.update_password(self.session, user_id, hash_password(new_password))
        revoked = await sessions.delete_user_sessions(
            self.session, user_id, keep_session_id=keep_session_id
        )
        logger.info(f"Password changed for user {user.username}, revoked {revoked} sessions")
        return revoked
