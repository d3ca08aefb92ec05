"""Pytest configuration and fixtures for Parley tests.

Every test gets its own in-memory SQLite store, its own AppState and a
fresh pair of apps, so nothing leaks between tests.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
import pytest_asyncio
from argon2 import PasswordHasher
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Set test environment variables before importing app modules
os.environ["PARLEY_JWT_SECRET_KEY"] = "t" * 64
os.environ["PARLEY_DATABASE_URL"] = "sqlite+aiosqlite://"

from parley.admin_app import create_admin_app  # noqa: E402
from parley.core.config import Settings, load_settings  # noqa: E402
from parley.core.database import create_engine, create_session_maker, init_db  # noqa: E402
from parley.main import create_user_app  # noqa: E402
from parley.state import AppState, build_state  # noqa: E402

TEST_SIGNING_KEY = "s" * 64
TEST_PASSWORD = "password123"
TEST_USER_AGENT = "parley-tests/1.0"


@pytest.fixture(autouse=True)
def fast_password_hasher(monkeypatch):
    """Swap the production argon2 parameters for cheap ones."""
    monkeypatch.setattr(
        "parley.services.auth.ph",
        PasswordHasher(time_cost=1, memory_cost=8, parallelism=1, hash_len=16, salt_len=8),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings with limits high enough that tests never trip them."""
    return load_settings(
        database_url="sqlite+aiosqlite://",
        rate_limit_capacity=10_000,
        rate_limit_refill_per_second=10_000,
    )


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_engine("sqlite+aiosqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(db_engine)


@pytest.fixture
def state(settings: Settings, session_maker: async_sessionmaker[AsyncSession]) -> AppState:
    return build_state(settings, session_maker, signing_key=TEST_SIGNING_KEY)


@pytest.fixture
def user_app(state: AppState) -> FastAPI:
    return create_user_app(state)


@pytest.fixture
def admin_app(state: AppState) -> FastAPI:
    return create_admin_app(state)


@pytest_asyncio.fixture
async def user_client(user_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=user_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"User-Agent": TEST_USER_AGENT},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def admin_client(admin_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=admin_app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"User-Agent": TEST_USER_AGENT},
    ) as client:
        yield client


@pytest.fixture
def register_user(user_client: AsyncClient) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Register an account through the API and return the response body."""

    async def _register(
        username: str, password: str = TEST_PASSWORD, **extra: Any
    ) -> dict[str, Any]:
        response = await user_client.post(
            "/api/register", json={"username": username, "password": password, **extra}
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def login(user_client: AsyncClient) -> Callable[..., Awaitable[dict[str, str]]]:
    """Log in and return Authorization headers for the new token."""

    async def _login(
        username: str,
        password: str = TEST_PASSWORD,
        headers: dict[str, str] | None = None,
    ) -> dict[str, str]:
        # The client keeps the auth cookie; clear it so each login is explicit
        user_client.cookies.clear()
        response = await user_client.post(
            "/api/login",
            json={"username": username, "password": password},
            headers=headers,
        )
        assert response.status_code == 200, response.text
        user_client.cookies.clear()
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest.fixture
def signup(register_user, login) -> Callable[..., Awaitable[tuple[int, dict[str, str]]]]:
    """Register then log in; returns (user_id, auth headers)."""

    async def _signup(username: str, password: str = TEST_PASSWORD) -> tuple[int, dict[str, str]]:
        body = await register_user(username, password)
        return body["user_id"], await login(username, password)

    return _signup
