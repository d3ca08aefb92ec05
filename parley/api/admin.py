"""Admin listener handlers. Every route here is admin-only Hard tier."""

from typing import TYPE_CHECKING

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.responses import Response

from parley.api.common import path_int, read_request, success
from parley.core.errors import NotFoundError, ValidationError
from parley.core.logging import get_logger
from parley.middleware.metrics import render_prometheus
from parley.schemas.auth import TokenClaims
from parley.schemas.records import UserRecord
from parley.schemas.requests import TargetUserRequest
from parley.services import users

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from parley.state import AppState

logger = get_logger("admin")


async def _load_target(db: "AsyncSession", target_id: int) -> UserRecord:
    user = await users.get_user_by_id(db, target_id)
    if user is None:
        raise NotFoundError("USER_NOT_FOUND", "User not found")
    return user


def _reject_self(target_id: int, user_id: int, action: str) -> None:
    if target_id == user_id:
        raise ValidationError("INVALID_TARGET", f"You cannot {action} yourself")


async def stats(request: Request, state: "AppState", user_id: int, claims: TokenClaims) -> Response:
    """POST /admin/api/stats"""
    settings = state.config.snapshot()
    async with state.db() as db:
        counts = await users.get_store_counts(db)

    return success(
        metrics=state.metrics.snapshot(),
        rate_limiter=await state.rate_limiter.get_stats(),
        ip_filter=state.ip_filter.stats(),
        store=counts,
        events=state.broadcaster.stats(),
        server={
            **settings.public_view(),
            "config_version": state.config.version,
            "bind_host": settings.bind_host,
            "user_port": settings.user_port,
            "admin_port": settings.admin_port,
            "max_connections": settings.max_connections,
            "request_timeout_seconds": settings.request_timeout_seconds,
            "connection_timeout_seconds": settings.connection_timeout_seconds,
            "strict_user_agent": settings.strict_user_agent,
        },
    )


async def list_users(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /admin/api/users"""
    async with state.db() as db:
        records = await users.list_users(db)
    return success(users=[u.public() for u in records], count=len(records))


async def ban_user(request: Request, state: "AppState", user_id: int, claims: TokenClaims) -> Response:
    """POST /admin/api/users/ban {user_id, reason?}

    The ban and the deletion of the target's sessions commit together.
    """
    body = await read_request(request, TargetUserRequest)
    target_id, reason = body.user_id, body.reason
    _reject_self(target_id, user_id, "ban")

    async with state.db() as db:
        target = await _load_target(db, target_id)
        revoked = await users.ban_user(db, target_id, banned_by=user_id, reason=reason)

    logger.warning(
        f"Admin {claims.sub} banned {target.username} ({reason or 'no reason'}), "
        f"revoked {revoked} sessions"
    )
    return success("User banned", user_id=target_id, sessions_revoked=revoked)


async def unban_user(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /admin/api/users/unban {user_id}"""
    target_id = (await read_request(request, TargetUserRequest)).user_id

    async with state.db() as db:
        target = await _load_target(db, target_id)
        await users.unban_user(db, target_id)

    logger.info(f"Admin {claims.sub} unbanned {target.username}")
    return success("User unbanned", user_id=target_id)


async def promote_user(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /admin/api/users/promote {user_id}"""
    target_id = (await read_request(request, TargetUserRequest)).user_id

    async with state.db() as db:
        target = await _load_target(db, target_id)
        await users.set_admin(db, target_id, True)

    logger.info(f"Admin {claims.sub} promoted {target.username}")
    return success("User promoted", user_id=target_id, is_admin=True)


async def demote_user(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """POST /admin/api/users/demote {user_id}"""
    target_id = (await read_request(request, TargetUserRequest)).user_id
    _reject_self(target_id, user_id, "demote")

    async with state.db() as db:
        target = await _load_target(db, target_id)
        revoked = await users.set_admin(db, target_id, False)

    logger.info(f"Admin {claims.sub} demoted {target.username}, revoked {revoked} sessions")
    return success("User demoted", user_id=target_id, is_admin=False, sessions_revoked=revoked)


async def delete_user(
    request: Request, state: "AppState", user_id: int, claims: TokenClaims
) -> Response:
    """DELETE /admin/api/users/:id"""
    target_id = path_int(request, "id", "INVALID_USER_ID")
    _reject_self(target_id, user_id, "delete")

    async with state.db() as db:
        target = await _load_target(db, target_id)
        await users.delete_user(db, target_id)

    logger.warning(f"Admin {claims.sub} deleted user {target.username} (id={target_id})")
    return success("User deleted", user_id=target_id)


async def metrics(request: Request, state: "AppState", user_id: int, claims: TokenClaims) -> Response:
    """GET /admin/api/metrics - Prometheus text exposition."""
    return Response(content=render_prometheus(state.metrics), media_type=CONTENT_TYPE_LATEST)
