"""Token codec: HS256-signed claims with expiry.

Decoding checks the signature and ``exp`` only. It never touches the store,
so a token whose session has been revoked still decodes until it expires.
"""

import time

import jwt
from jwt.exceptions import PyJWTError
from pydantic import ValidationError as PydanticValidationError

from parley.core.errors import InvalidTokenError, TokenExpiredError
from parley.schemas.auth import TokenClaims

ALGORITHM = "HS256"

# Stored and compared User-Agent prefix length
USER_AGENT_PREFIX_LENGTH = 30


def user_agent_prefix(user_agent: str | None) -> str:
    return (user_agent or "")[:USER_AGENT_PREFIX_LENGTH]


def build_claims(
    *,
    username: str,
    user_id: int,
    session_id: str,
    user_agent: str | None,
    is_admin: bool,
    lifetime_seconds: int,
    now: int | None = None,
) -> TokenClaims:
    """Claims for a freshly issued token."""
    issued_at = int(time.time()) if now is None else now
    return TokenClaims(
        sub=username,
        user_id=user_id,
        session_id=session_id,
        user_agent=user_agent_prefix(user_agent),
        is_admin=is_admin,
        iat=issued_at,
        exp=issued_at + lifetime_seconds,
    )


def encode(claims: TokenClaims, key: str) -> str:
    """Sign claims into a compact token."""
    token = jwt.encode(claims.model_dump(), key, algorithm=ALGORITHM)
    # PyJWT 2.x returns str; older type stubs may declare bytes
    return str(token)


def decode_and_verify(token: str, key: str) -> TokenClaims:
    """Verify signature and expiry and return the claims.

    Raises:
        TokenExpiredError: ``exp`` is at or before now.
        InvalidTokenError: malformed token, bad signature or bad claims.
    """
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredError() from e
    except PyJWTError as e:
        raise InvalidTokenError(message=f"Invalid token: {e}") from e

    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError as e:
        raise InvalidTokenError(message="Invalid token claims") from e
