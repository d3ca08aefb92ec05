"""Process-wide state shared by the user and admin listeners."""

import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parley.api.static import StaticFileResolver
from parley.core.config import ConfigStore, Settings
from parley.core.database import session_scope
from parley.core.logging import get_logger
from parley.middleware.ip_filter import IPFilter
from parley.middleware.metrics import Metrics
from parley.middleware.rate_limit import RateLimiter
from parley.services.broadcaster import Broadcaster

logger = get_logger("state")


@dataclass
class AppState:
    """Everything a handler can reach besides its request.

    The signing key is fixed for the life of the process; rotating it would
    invalidate every live session, so it is not part of the reloadable config.
    """

    config: ConfigStore
    session_maker: async_sessionmaker[AsyncSession]
    signing_key: str
    metrics: Metrics
    rate_limiter: RateLimiter
    ip_filter: IPFilter
    broadcaster: Broadcaster = field(default_factory=Broadcaster)
    static_resolver: StaticFileResolver | None = None

    @asynccontextmanager
    async def db(self) -> AsyncIterator[AsyncSession]:
        """A store session committed on success and rolled back on failure."""
        async with session_scope(self.session_maker) as session:
            yield session

    def apply_config(self, settings: Settings) -> None:
        """Push reloadable settings into the live limiter and filter."""
        self.ip_filter.update(settings.ip_allowlist, settings.ip_blocklist)
        self.rate_limiter.configure(
            capacity=settings.rate_limit_capacity,
            refill_rate=settings.rate_limit_refill_per_second,
            idle_seconds=settings.rate_limit_idle_seconds,
        )
        self.static_resolver = _static_resolver(settings)

    def reload_config(self) -> Settings:
        """Re-read configuration and apply it. Pinned fields keep their values."""
        settings = self.config.reload()
        self.apply_config(settings)
        logger.info(f"Configuration reloaded (version {self.config.version})")
        return settings


def resolve_signing_key(settings: Settings) -> str:
    """The configured JWT key, or a random per-process key with a warning."""
    if settings.jwt_secret_key:
        return settings.jwt_secret_key
    logger.warning(
        "PARLEY_JWT_SECRET_KEY is not set; using a random key. "
        "Every session will be invalidated on restart."
    )
    return secrets.token_urlsafe(48)


def _static_resolver(settings: Settings) -> StaticFileResolver | None:
    if not settings.web_dir:
        return None
    web_dir = Path(settings.web_dir)
    if not web_dir.is_dir():
        logger.warning(f"web_dir {web_dir} does not exist; static files disabled")
        return None
    return StaticFileResolver(web_dir)


def build_state(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    config_file: str | Path | None = None,
    signing_key: str | None = None,
) -> AppState:
    """Assemble shared state from a settings snapshot."""
    state = AppState(
        config=ConfigStore(settings, config_file=config_file),
        session_maker=session_maker,
        signing_key=signing_key or resolve_signing_key(settings),
        metrics=Metrics(),
        rate_limiter=RateLimiter(
            capacity=settings.rate_limit_capacity,
            refill_rate=settings.rate_limit_refill_per_second,
            idle_seconds=settings.rate_limit_idle_seconds,
        ),
        ip_filter=IPFilter(settings.ip_allowlist, settings.ip_blocklist),
        broadcaster=Broadcaster(),
    )
    state.static_resolver = _static_resolver(settings)
    return state
