"""Tiered request router.

Every route is registered with a trust tier, and the tier decides what the
router verifies before the handler runs and what identity the handler gets:

=========  ===========================  ======================================
Tier       Verified by the router       Handler signature
=========  ===========================  ======================================
Open       nothing                      ``(request, state)``
Light      token signature and expiry   ``(request, state, claims)``
Hard       token + live session + IP    ``(request, state, user_id, claims)``
=========  ===========================  ======================================

Handlers trust what they are given and never re-run verification.

Path templates are matched literally, segment by segment; ``:name`` matches
exactly one non-empty segment and is exposed as ``request.path_params``.
There is no trailing-slash normalization and the first registered match wins.
"""

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from parley.core.errors import (
    ApiError,
    AuthError,
    DatabaseError,
    InternalError,
    error_response,
)
from parley.core.logging import bind_listener, get_logger, unbind_listener
from parley.schemas.auth import TokenClaims
from parley.services.session_validator import decode_jwt_claims, validate_jwt_secure

if TYPE_CHECKING:
    from parley.state import AppState

logger = get_logger("router")

OpenHandler = Callable[[Request, "AppState"], Awaitable[Response]]
LightHandler = Callable[[Request, "AppState", TokenClaims], Awaitable[Response]]
HardHandler = Callable[[Request, "AppState", int, TokenClaims], Awaitable[Response]]

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@dataclass(frozen=True)
class OpenRoute:
    method: str
    path: str
    handler: OpenHandler


@dataclass(frozen=True)
class LightRoute:
    method: str
    path: str
    handler: LightHandler


@dataclass(frozen=True)
class HardRoute:
    method: str
    path: str
    handler: HardHandler
    # Also require the is_admin claim after the secure path succeeds
    admin_only: bool = False


Route = OpenRoute | LightRoute | HardRoute


def strip_query(path: str) -> str:
    return path.split("?", 1)[0]


def match_path(template: str, path: str) -> dict[str, str] | None:
    """Match a path against a template, returning captured params or None."""
    path = strip_query(path)
    if template == path:
        return {}

    template_segments = template.split("/")
    path_segments = path.split("/")
    if len(template_segments) != len(path_segments):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(template_segments, path_segments):
        if expected.startswith(":"):
            if not actual:
                return None
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


def path_matches(template: str, path: str) -> bool:
    return match_path(template, path) is not None


def _unauthorized() -> Response:
    return error_response(
        "UNAUTHORIZED",
        "Authentication required",
        status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


class TieredRouter:
    """Ordered route table with per-route trust tiers."""

    def __init__(self, name: str, serve_static: bool = False) -> None:
        self.name = name
        # Unmatched GETs fall back to the web directory when one is configured
        self.serve_static = serve_static
        self.routes: list[Route] = []

    def add(self, route: Route) -> None:
        self.routes.append(route)

    def open(self, method: str, path: str, handler: OpenHandler) -> None:
        self.add(OpenRoute(method.upper(), path, handler))

    def light(self, method: str, path: str, handler: LightHandler) -> None:
        self.add(LightRoute(method.upper(), path, handler))

    def hard(self, method: str, path: str, handler: HardHandler) -> None:
        self.add(HardRoute(method.upper(), path, handler))

    def admin(self, method: str, path: str, handler: HardHandler) -> None:
        self.add(HardRoute(method.upper(), path, handler, admin_only=True))

    def match(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        """First route, in registration order, matching method and path."""
        method = method.upper()
        for route in self.routes:
            if route.method != method:
                continue
            params = match_path(route.path, path)
            if params is not None:
                return route, params
        return None

    async def dispatch(self, request: Request, state: "AppState") -> Response:
        method = request.method.upper()
        path = request.url.path

        matched = self.match(method, path)
        if matched is None:
            if method == "GET" and self.serve_static and state.static_resolver is not None:
                static = state.static_resolver.resolve(path)
                if static is not None:
                    return static
            return error_response("NOT_FOUND", "Endpoint not found", status.HTTP_404_NOT_FOUND)

        route, params = matched
        request.scope["path_params"] = params

        if isinstance(route, OpenRoute):
            call = functools.partial(route.handler, request, state)

        elif isinstance(route, LightRoute):
            try:
                claims = decode_jwt_claims(request, state.signing_key)
            except AuthError as exc:
                self._log_rejection(method, path, exc)
                return _unauthorized()
            call = functools.partial(route.handler, request, state, claims)

        else:
            try:
                user_id, claims = await validate_jwt_secure(request, state)
            except AuthError as exc:
                self._log_rejection(method, path, exc)
                return _unauthorized()
            except SQLAlchemyError:
                logger.exception(f"{self.name}: session lookup failed for {method} {path}")
                return DatabaseError().to_response()

            if route.admin_only and not claims.is_admin:
                logger.warning(f"{self.name}: non-admin user {user_id} denied {method} {path}")
                return error_response(
                    "FORBIDDEN", "Admin privileges required", status.HTTP_403_FORBIDDEN
                )
            call = functools.partial(route.handler, request, state, user_id, claims)

        return await self._invoke(method, path, call)

    async def _invoke(
        self, method: str, path: str, call: Callable[[], Awaitable[Response]]
    ) -> Response:
        """Run a handler, turning failures into structured responses."""
        try:
            return await call()
        except ApiError as exc:
            if exc.status_code >= 500:
                logger.error(f"{self.name}: {method} {path} failed: {exc.code}")
            return exc.to_response()
        except SQLAlchemyError:
            logger.exception(f"{self.name}: database error in {method} {path}")
            return DatabaseError().to_response()
        except Exception:
            logger.exception(f"{self.name}: unhandled error in {method} {path}")
            return InternalError().to_response()

    def _log_rejection(self, method: str, path: str, exc: AuthError) -> None:
        logger.info(f"{self.name}: rejected {method} {path}: {type(exc).__name__}: {exc.message}")

    def mount(self, app: FastAPI, state: "AppState") -> None:
        """Install the router as the app's catch-all endpoint."""

        async def endpoint(request: Request) -> Response:
            token = bind_listener(self.name)
            try:
                return await self.dispatch(request, state)
            finally:
                unbind_listener(token)

        app.add_route("/{path:path}", endpoint, methods=ALL_METHODS, include_in_schema=False)
