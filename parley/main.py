"""Parley - FastAPI application factories for the user and admin listeners."""

from fastapi import FastAPI

from parley.api.router import build_user_router
from parley.api.routing import TieredRouter
from parley.core.logging import get_logger
from parley.middleware import (
    IPFilterMiddleware,
    LoadShedMiddleware,
    MetricsMiddleware,
    RateLimitMiddleware,
    RequestTimeoutMiddleware,
    SecurityHeadersMiddleware,
    StagedTimeoutMiddleware,
)
from parley.state import AppState

logger = get_logger("main")


def build_app(state: AppState, router: TieredRouter, description: str) -> FastAPI:
    """Create an app serving ``router`` behind the protective pipeline.

    Both listeners share ``state``; each app gets its own middleware
    instances, so in-flight counts are per listener.
    """
    settings = state.config.snapshot()
    app = FastAPI(
        title=f"{settings.app_name} ({router.name})",
        description=description,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.parley = state

    # Starlette runs middleware in LIFO order: the last one added is outermost.
    # Request flow: staged deadline, headers, load-shed, IP filter, rate limit,
    # request timeout, metrics, router.
    app.add_middleware(MetricsMiddleware, state=state)
    app.add_middleware(RequestTimeoutMiddleware, state=state)
    app.add_middleware(RateLimitMiddleware, state=state)
    app.add_middleware(IPFilterMiddleware, state=state)
    app.add_middleware(LoadShedMiddleware, state=state)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(StagedTimeoutMiddleware, state=state)

    router.mount(app, state)
    logger.info(f"Built {router.name} app with {len(router.routes)} routes")
    return app


def create_user_app(state: AppState) -> FastAPI:
    """The user-facing listener: auth, chats, groups, messages, profile."""
    return build_app(state, build_user_router(), "Parley messaging API")
