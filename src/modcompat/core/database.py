"""Database connection management with async SQLAlchemy."""

from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from modcompat.core.config import settings
from modcompat.core.logging import get_logger

logger = get_logger(__name__)


class DBErrorMessage:
    """Standardized database error messages."""
    CREATE_ENGINE_NO_URL = "DATABASE_URL is not configured"
    CREATE_ENGINE_MIN_DB_POOL_SIZE = "DATABASE_POOL_SIZE must be at least 1"
    CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW = "DATABASE_MAX_OVERFLOW must be non-negative"
    CREATE_ENGINE_FAILED = "Failed to create database engine"

    GET_DB_SESSION_FAILED = "Failed to create database session"
    CLOSE_DATABASE_FAILED = "Failed to close database connections"


def _redacted(url: str) -> str:
    return url.split("@")[1] if "@" in url else "***"


def create_engine() -> AsyncEngine:
    """Create AsyncEngine with connection pooling configuration.

    Returns:
        AsyncEngine: Configured async SQLAlchemy engine

    Connection Pool Configuration:
        - pool_size: Number of connections to keep in the pool (default: 20)
        - max_overflow: Maximum overflow connections (default: 10)
        - pool_pre_ping: Test connections before handing them out
        - pool_recycle: Recycle connections after one hour

    Raises:
        ValueError: If database URL is invalid or settings are misconfigured
    """
    try:
        if not settings.database_url:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NO_URL)

        if settings.database_pool_size < 1:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_MIN_DB_POOL_SIZE)

        if settings.database_max_overflow < 0:
            raise ValueError(DBErrorMessage.CREATE_ENGINE_NEGATIVE_MAX_OVERFLOW)

        logger.info(
            "Creating async database engine",
            url=_redacted(settings.database_url),
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

        if settings.database_url.startswith("sqlite"):
            # SQLite picks its own pool class; sizing arguments do not apply
            return create_async_engine(
                settings.database_url,
                echo=False,
                connect_args={"check_same_thread": False},
            )

        return create_async_engine(
            settings.database_url,
            echo=False,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
    except ValueError:
        raise
    except Exception as e:
        logger.error(f"Failed to create database engine, due to configuration error: {e}")
        raise ValueError(DBErrorMessage.CREATE_ENGINE_FAILED) from e


engine: AsyncEngine = create_engine()

# expire_on_commit=False: resolvers keep reading loaded rows after committing
# each owner's replace
async_session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Route-level exceptions such as HTTPException pass through untouched; only
    storage errors escaping the route are rolled back and wrapped.

    Yields:
        AsyncSession: Database session for route handlers

    Raises:
        RuntimeError: If the session fails with a storage error
    """
    async with async_session_maker() as session:
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database session error occurred: {e}")
            raise RuntimeError(DBErrorMessage.GET_DB_SESSION_FAILED) from e


async def check_database_connection() -> bool:
    """Check if database connection is available.

    Used for health checks and diagnostics.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.debug("Database connection check passed")
        return True
    except Exception as e:
        logger.error(f"Database connection check failed with error: {e}")
        return False


async def close_database() -> None:
    """Close all database connections.

    Should be called during application shutdown and at the end of job runs.

    Raises:
        RuntimeError: If graceful shutdown fails
    """
    try:
        logger.info("Closing database connections")
        await engine.dispose()
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
        raise RuntimeError(DBErrorMessage.CLOSE_DATABASE_FAILED) from e
