"""Parley configuration.

Settings come from (lowest to highest precedence) field defaults, a ``.env``
file, ``PARLEY_*`` environment variables and an optional TOML config file.
The running process reads them through a ``ConfigStore``, which hands out an
immutable snapshot and swaps it wholesale on reload.
"""

import ipaddress
import threading
import tomllib
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from parley.core.logging import get_logger

logger = get_logger("config")

# Fields bound once at startup; a reload never changes them
PINNED_FIELDS = ("bind_host", "user_port", "admin_port", "jwt_secret_key", "database_url")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PARLEY_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    app_name: str = "parley"
    app_version: str = "0.4.0"
    # Verbose logs and readable log format
    debug: bool = False
    log_level: str = "INFO"

    # Listeners
    bind_host: str = "127.0.0.1"
    user_port: int = Field(default=1337, ge=1, le=65535)
    admin_port: int = Field(default=1338, ge=1, le=65535)
    # Requests in flight before new ones are shed with 503
    max_connections: int = Field(default=1000, ge=1)

    # SQLite file backing the store
    database_url: str = "sqlite+aiosqlite:///./parley.db"

    # HS256 signing key; generated per process when unset
    jwt_secret_key: str | None = None
    token_expiry_minutes: int = Field(default=60, ge=1)
    email_required: bool = False
    # Reject (instead of warn) when the User-Agent prefix changes mid-session
    strict_user_agent: bool = False

    # Token bucket per client IP
    rate_limit_capacity: int = Field(default=60, ge=1)
    rate_limit_refill_per_second: float = Field(default=10.0, gt=0)
    rate_limit_idle_seconds: int = Field(default=60, ge=1)
    rate_limit_cleanup_interval_seconds: int = Field(default=30, ge=1)

    # CIDR lists; block wins over allow, empty allow list admits everyone
    ip_allowlist: Annotated[list[str], NoDecode] = Field(default_factory=list)
    ip_blocklist: Annotated[list[str], NoDecode] = Field(default_factory=list)
    # Proxies allowed to set X-Forwarded-For / X-Real-IP for filtering and limiting
    trusted_proxy_ips: Annotated[list[str], NoDecode] = Field(default_factory=list)

    # Per-request budget before a 408
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    # Connection drains after this long, then is dropped after the grace window
    connection_timeout_seconds: float = Field(default=60.0, gt=0)
    connection_grace_seconds: float = Field(default=5.0, gt=0)

    session_cleanup_interval_seconds: int = Field(default=300, ge=1)
    metrics_log_interval_seconds: int = Field(default=60, ge=1)

    # Directory served for unmatched GET requests on the user listener
    web_dir: str | None = None

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str | None) -> str | None:
        """Reject signing keys too short for HS256."""
        if v is not None and len(v) < 32:
            raise ValueError("jwt_secret_key must be at least 32 characters")
        return v

    @field_validator("ip_allowlist", "ip_blocklist", "trusted_proxy_ips", mode="before")
    @classmethod
    def split_comma_list(cls, v: Any) -> Any:
        """Accept comma-separated strings as well as lists."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("ip_allowlist", "ip_blocklist")
    @classmethod
    def validate_networks(cls, v: list[str]) -> list[str]:
        """Fail at load time on entries that are not IPs or CIDR networks."""
        for entry in v:
            try:
                ipaddress.ip_network(entry, strict=False)
            except ValueError as e:
                raise ValueError(f"Invalid network in IP list: {entry!r}") from e
        return v

    def public_view(self) -> dict[str, Any]:
        """Settings safe to expose to unauthenticated clients."""
        return {
            "app_name": self.app_name,
            "version": self.app_version,
            "email_required": self.email_required,
            "token_expiry_minutes": self.token_expiry_minutes,
        }


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Read a TOML config file, flattening top-level tables into one mapping."""
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    flat: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def load_settings(config_file: str | Path | None = None, **overrides: Any) -> Settings:
    """Build settings from the environment, an optional TOML file and overrides."""
    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(read_config_file(config_file))
    values.update(overrides)
    return Settings(**values)


class ConfigStore:
    """Versioned, read-mostly configuration snapshot.

    Readers copy out the frozen ``Settings`` through ``snapshot()`` and keep
    that object for as long as they need a consistent view; a later swap
    never mutates it.
    """

    def __init__(self, settings: Settings, config_file: str | Path | None = None) -> None:
        self._settings = settings
        self._version = 1
        self._config_file = Path(config_file) if config_file else None
        self._lock = threading.RLock()

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    @property
    def config_file(self) -> Path | None:
        return self._config_file

    def snapshot(self) -> Settings:
        with self._lock:
            return self._settings

    def swap(self, new: Settings) -> Settings:
        """Replace the current snapshot, keeping pinned fields from the old one."""
        with self._lock:
            current = self._settings
            changed = [f for f in PINNED_FIELDS if getattr(new, f) != getattr(current, f)]
            if changed:
                logger.warning(f"Ignoring changes to non-reloadable settings: {', '.join(changed)}")
                new = new.model_copy(update={f: getattr(current, f) for f in PINNED_FIELDS})
            self._settings = new
            self._version += 1
            version = self._version
        logger.info(f"Configuration swapped to version {version}")
        return new

    def reload(self) -> Settings:
        """Re-read the config file (and environment) and swap the result in."""
        new = load_settings(self._config_file)
        return self.swap(new)
