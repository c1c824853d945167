"""Shared pytest fixtures for test suite."""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

# Set test environment variables BEFORE any app imports
# This ensures tracing and other features are disabled during app initialization
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["OTEL_ENABLED"] = "false"  # Disable OpenTelemetry to prevent background threads
os.environ["VALKEY_URL"] = ""  # Prevent cache client creation at module load - tests use FakeRedis
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from modcompat.core.config import Settings
from modcompat.core.database import get_db
from modcompat.main import app
from modcompat.models.base import Base

# Fixed reference time; factories publish rows relative to it
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Get settings configured for testing."""
    return Settings(
        environment="testing",
        log_level="WARNING",
    )


@pytest.fixture
def now() -> datetime:
    """The ``as_of`` timestamp tests evaluate visibility against."""
    return NOW


# ===== Database Fixtures =====


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh database schema for each test.

    Services commit their own work, so isolation comes from a new schema
    per test rather than an outer transaction that is rolled back. Uses
    SQLite in-memory unless DATABASE_URL points elsewhere (e.g. PostgreSQL
    integration runs).

    Yields:
        AsyncEngine: Test database engine
    """
    database_url = os.environ["DATABASE_URL"]

    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},  # Required for SQLite with async
            poolclass=StaticPool,  # One shared connection keeps the in-memory database alive
        )
    else:
        engine = create_async_engine(
            database_url,
            echo=False,
            pool_size=5,  # Smaller pool for tests
            max_overflow=5,
            pool_pre_ping=True,
        )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine, configured like the app's."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Database session for arranging and asserting test data.

    Yields:
        AsyncSession: Session on the per-test database
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def db_session(test_session: AsyncSession) -> AsyncSession:
    """Alias for test_session to match common naming convention."""
    return test_session


# ===== Cache Fixtures =====


@pytest_asyncio.fixture(scope="function")
async def cache() -> AsyncGenerator[Redis, None]:
    """Provide a clean in-memory cache client for each test.

    Yields:
        Redis: FakeRedis client
    """
    client: Redis = FakeAsyncRedis(decode_responses=True)
    await client.flushdb()

    yield client

    await client.flushdb()
    await client.aclose()


# ===== API Client Fixtures =====


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client whose requests use the per-test database.

    Yields:
        AsyncClient: HTTP client for testing FastAPI endpoints

    Example:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test"
        ) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def api_client(async_client: AsyncClient) -> AsyncClient:
    """Alias for async_client to match common naming convention."""
    return async_client


# ===== Utility Fixtures =====


@pytest.fixture
def anyio_backend() -> str:
    """Specify asyncio as the backend for anyio tests."""
    return "asyncio"
