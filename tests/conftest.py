"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests.
"""

import os

# Settings are read at import time, so the test environment must be in place
# before anything from starter is imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from collections.abc import AsyncGenerator, Awaitable, Callable  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import starter.models  # noqa: E402, F401
from starter.config import UserRole  # noqa: E402
from starter.core.database import build_engine, get_db  # noqa: E402
from starter.core.redis import get_redis  # noqa: E402
from starter.core.security import get_password_hash  # noqa: E402
from starter.main import app as main_app  # noqa: E402
from starter.models.user import Users  # noqa: E402

TEST_PASSWORD = "TestPassword123!"

SessionFactory = async_sessionmaker[AsyncSession]


@pytest.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    A fresh SQLite database file for each test.

    A file (rather than :memory:) lets concurrent requests use separate
    connections to the same database, exactly like a deployed server.
    """
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def redis_mock() -> AsyncMock:
    """Redis stand-in that never rate limits."""
    client = AsyncMock()
    client.get.return_value = None
    pipeline = MagicMock()
    pipeline.execute = AsyncMock(return_value=[1, True])
    client.pipeline = MagicMock(return_value=pipeline)
    return client


@pytest.fixture(autouse=True)
def enqueue_mock(monkeypatch) -> AsyncMock:
    """Capture jobs the auth routes put on the arq queue; no Redis needed."""
    mock = AsyncMock(return_value="test-job-id")
    monkeypatch.setattr("starter.api.v1.auth.enqueue_job", mock)
    return mock


@pytest.fixture(scope="function")
def app(session_factory: SessionFactory, redis_mock: AsyncMock) -> FastAPI:
    """
    FastAPI app wired to the test database and Redis mock.

    Every request gets its own session, as in production, so concurrent
    requests really do race each other.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis_mock

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_redis] = override_get_redis

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/auth/me")
            assert response.status_code == 401
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def create_user(session_factory: SessionFactory) -> Callable[..., Awaitable[Users]]:
    """
    Factory for committed users with a known password.

    Usage:
        async def test_login(create_user):
            user = await create_user("alice@example.com")
    """

    async def _create_user(
        email: str = "user@example.com",
        password: str | None = TEST_PASSWORD,
        role: str = UserRole.USER,
        **fields,
    ) -> Users:
        user = Users(
            email=email,
            password_hash=get_password_hash(password) if password else None,
            role=role,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            **fields,
        )
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _create_user


@pytest.fixture
async def test_user(create_user) -> Users:
    return await create_user("test@example.com")


@pytest.fixture
async def admin_user(create_user) -> Users:
    return await create_user("admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def login(client: AsyncClient) -> Callable[..., Awaitable[dict]]:
    """Log in through the API and return the response body."""

    async def _login(
        email: str = "test@example.com",
        password: str = TEST_PASSWORD,
        remember_me: bool = False,
    ) -> dict:
        response = await client.post(
            "/api/auth/login",
            json={"email": email, "password": password, "rememberMe": remember_me},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _login
