"""Two-tier token validation.

A request moves Unauthenticated -> TokenDecoded -> FastOK | SecureOK, or is
rejected along the way:

- ``decode_jwt_claims`` (fast path): signature and expiry only, no I/O.
- ``validate_jwt_secure`` (secure path): the fast path, then the session
  row must be live, the bound IP must match, and the User-Agent prefix is
  compared.

Only the router calls these. Handlers receive the result.
"""

from typing import TYPE_CHECKING

from fastapi import Request

from parley.core.errors import (
    IpMismatchError,
    MissingTokenError,
    SessionNotFoundError,
    UserAgentMismatchError,
)
from parley.core.logging import get_logger
from parley.core.request_utils import UNKNOWN_IP, get_forwarded_ip
from parley.schemas.auth import TokenClaims
from parley.services import sessions, tokens

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("session_validator")

AUTH_COOKIE_NAME = "auth_id"


def extract_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, else the auth cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    cookie = request.cookies.get(AUTH_COOKIE_NAME)
    if cookie:
        return cookie
    return None


def decode_jwt_claims(request: Request, signing_key: str) -> TokenClaims:
    """Fast path: verify the presented token without touching the store."""
    token = extract_token(request)
    if token is None:
        raise MissingTokenError()
    return tokens.decode_and_verify(token, signing_key)


async def validate_jwt_secure(request: Request, state: "AppState") -> tuple[int, TokenClaims]:
    """Secure path: fast path plus session revocation and IP binding checks.

    Returns:
        (user_id, claims) of the verified caller.

    Raises:
        SessionNotFoundError: session row deleted, expired or user banned.
        IpMismatchError: session bound to a different address.
        UserAgentMismatchError: only when strict_user_agent is enabled.
    """
    claims = decode_jwt_claims(request, state.signing_key)

    async with state.db() as db:
        session = await sessions.get_live_session(db, claims.session_id)
        if session is None:
            raise SessionNotFoundError(message=f"No live session {claims.session_id}")

        request_ip = get_forwarded_ip(request) or UNKNOWN_IP
        if session.ip_address and session.ip_address != request_ip:
            raise IpMismatchError(
                message=f"Session for user {claims.user_id} bound to {session.ip_address}, "
                f"request from {request_ip}"
            )

        current_ua = tokens.user_agent_prefix(request.headers.get("User-Agent"))
        if current_ua != claims.user_agent:
            if state.config.snapshot().strict_user_agent:
                raise UserAgentMismatchError()
            logger.warning(
                f"User-Agent changed for user {claims.user_id}: "
                f"{claims.user_agent!r} -> {current_ua!r}"
            )

        await sessions.touch_session(db, claims.session_id)

    return session.user_id, claims
