"""Registration, login and logout handlers (Open tier)."""

from typing import TYPE_CHECKING

from fastapi import Request, status
from starlette.responses import Response

from parley.api.common import read_request, success
from parley.core.errors import AuthError, ForbiddenError
from parley.core.logging import get_logger
from parley.core.request_utils import get_forwarded_ip, is_https
from parley.schemas.requests import LoginRequest, RegisterRequest
from parley.services import sessions, tokens
from parley.services.auth import AuthService
from parley.services.session_validator import AUTH_COOKIE_NAME, extract_token

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("auth")


def set_auth_cookie(response: Response, request: Request, token: str, max_age: int | None) -> None:
    """HttpOnly, SameSite=Strict auth cookie; Secure over HTTPS.

    Without max_age the cookie lasts for the browser session only.
    """
    response.set_cookie(
        AUTH_COOKIE_NAME,
        token,
        max_age=max_age,
        path="/",
        secure=is_https(request),
        httponly=True,
        samesite="strict",
    )


def clear_auth_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        AUTH_COOKIE_NAME,
        path="/",
        secure=is_https(request),
        httponly=True,
        samesite="strict",
    )


async def register(request: Request, state: "AppState") -> Response:
    """POST /api/register"""
    body = await read_request(request, RegisterRequest)

    settings = state.config.snapshot()
    async with state.db() as db:
        user = await AuthService(db).register(
            body.username,
            body.password,
            email=body.email,
            email_required=settings.email_required,
        )

    return success(
        "Registration successful",
        status_code=status.HTTP_201_CREATED,
        user_id=user.id,
        username=user.username,
        is_admin=user.is_admin,
    )


async def _login(request: Request, state: "AppState", admin_only: bool) -> Response:
    body = await read_request(request, LoginRequest)
    lifetime = state.config.snapshot().token_expiry_minutes * 60

    async with state.db() as db:
        service = AuthService(db)
        user = await service.authenticate(body.username, body.password)
        if admin_only and not user.is_admin:
            logger.warning(f"Non-admin user {user.username} attempted admin login")
            raise ForbiddenError("FORBIDDEN", "Admin privileges required")

        token, claims, session = await service.start_session(
            user,
            signing_key=state.signing_key,
            lifetime_seconds=lifetime,
            ip_address=get_forwarded_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )

    logger.info(f"User {user.username} logged in (session bound to {session.ip_address or 'any'})")
    response = success(
        "Login successful",
        token=token,
        user_id=user.id,
        username=user.username,
        is_admin=user.is_admin,
        expires_at=claims.exp,
    )
    set_auth_cookie(response, request, token, max_age=lifetime if body.remember_me else None)
    return response


async def login(request: Request, state: "AppState") -> Response:
    """POST /api/login"""
    return await _login(request, state, admin_only=False)


async def admin_login(request: Request, state: "AppState") -> Response:
    """POST /admin/api/login - same flow, admins only."""
    return await _login(request, state, admin_only=True)


async def logout(request: Request, state: "AppState") -> Response:
    """POST /api/logout

    Open tier: always clears the cookie. If the presented token still
    decodes, its session row is deleted; the decoded claims are used only
    to find that row, never as caller identity.
    """
    token = extract_token(request)
    if token is not None:
        try:
            claims = tokens.decode_and_verify(token, state.signing_key)
        except AuthError as exc:
            logger.debug(f"Logout with unusable token: {exc.message}")
        else:
            async with state.db() as db:
                await sessions.delete_session(db, claims.session_id)
            logger.info(f"User {claims.sub} logged out")

    response = success("Logged out")
    clear_auth_cookie(response, request)
    return response
