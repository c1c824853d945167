"""Valkey/Redis connection management and job locks.

The resolution engine itself is lock-free; the cache backs the scheduling-layer
lock that keeps two runs of the same batch job from overlapping.
"""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import redis.asyncio as redis
from redis.asyncio import Redis

from modcompat.core.config import settings
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_cache

# FakeRedis backs the client when no VALKEY_URL is configured (tests, local runs)
try:
    from fakeredis import FakeAsyncRedis
    FAKEREDIS_AVAILABLE = True
except ImportError:
    FAKEREDIS_AVAILABLE = False

logger = get_logger(__name__)

LOCK_PREFIX = "modcompat:lock:"


class CacheErrorMessage:
    """Standardized cache error messages."""

    CREATE_CLIENT_NO_URL = "Valkey URL is not configured"
    CREATE_CLIENT_FAILED = "Failed to create Valkey client"
    GET_CACHE_FAILED = "Failed to get cache connection"
    CLOSE_CACHE_FAILED = "Failed to close cache connections"


def create_client() -> Redis:
    """Create async Redis client with connection pooling.

    Returns:
        Redis: Configured async Redis client (or FakeRedis when no URL is set)

    Raises:
        ValueError: If Valkey URL is invalid or settings are misconfigured
    """
    try:
        if not settings.valkey_url and FAKEREDIS_AVAILABLE:
            logger.info("Creating FakeRedis client")
            return FakeAsyncRedis(decode_responses=True)  # type: ignore[return-value]

        if not settings.valkey_url:
            raise ValueError(CacheErrorMessage.CREATE_CLIENT_NO_URL)

        logger.info(
            "Creating async Valkey client",
            url=settings.valkey_url.split("@")[1] if "@" in settings.valkey_url else "***",
            max_connections=20,
        )

        client: Redis = redis.from_url(  # type: ignore[no-untyped-call]
            settings.valkey_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

        return client
    except ValueError:
        raise
    except Exception as e:
        logger.error(
            f"Failed to create Valkey client due to configuration error: {e}"
        )
        raise ValueError(CacheErrorMessage.CREATE_CLIENT_FAILED) from e


cache_client: Any = create_client()


async def get_cache() -> Any:
    """FastAPI dependency for cache access.

    Raises:
        RuntimeError: If cache client cannot be accessed
    """
    try:
        await cache_client.ping()
        return cache_client
    except Exception as e:
        logger.error(f"Cache connection error occurred: {e}")
        raise RuntimeError(CacheErrorMessage.GET_CACHE_FAILED) from e


@trace_cache()
async def check_cache_connection() -> bool:
    """Check if cache connection is available.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        await cache_client.ping()
        logger.debug("Cache connection check passed")
        return True
    except Exception as e:
        logger.error(f"Cache connection check failed with error: {e}")
        return False


@trace_cache()
async def acquire_lock(client: Any, name: str, ttl_seconds: int) -> str | None:
    """Try to take the named lock.

    Returns:
        The owner token when acquired, None when another holder has it.
    """
    token = uuid.uuid4().hex
    acquired = await client.set(f"{LOCK_PREFIX}{name}", token, nx=True, ex=ttl_seconds)
    if acquired:
        logger.debug("Lock acquired", lock=name, ttl_seconds=ttl_seconds)
        return token
    logger.debug("Lock held elsewhere", lock=name)
    return None


@trace_cache()
async def release_lock(client: Any, name: str, token: str) -> bool:
    """Release the named lock if ``token`` still owns it.

    An expired lock that somebody else re-acquired is left alone.
    """
    key = f"{LOCK_PREFIX}{name}"
    current = await client.get(key)
    if current != token:
        logger.warning("Lock no longer owned at release", lock=name)
        return False
    await client.delete(key)
    logger.debug("Lock released", lock=name)
    return True


@asynccontextmanager
async def job_lock(
    name: str,
    ttl_seconds: int | None = None,
    client: Any = None,
) -> AsyncIterator[bool]:
    """Hold the named job lock for the duration of the block.

    Yields True when this caller owns the lock, False when a run of the same
    job is already in progress.

    Example:
        async with job_lock("resolve-versions") as acquired:
            if not acquired:
                return
            await sweep.run()
    """
    client = client if client is not None else cache_client
    ttl = ttl_seconds if ttl_seconds is not None else settings.job_lock_ttl_seconds
    token = await acquire_lock(client, name, ttl)
    try:
        yield token is not None
    finally:
        if token is not None:
            await release_lock(client, name, token)


@trace_cache()
async def close_cache() -> None:
    """Close all cache connections.

    Raises:
        RuntimeError: If graceful shutdown fails
    """
    try:
        logger.info("Closing cache connections")
        await cache_client.aclose()
        if hasattr(cache_client, 'connection_pool'):
            await cache_client.connection_pool.disconnect()
    except Exception as e:
        logger.error(f"Error closing cache connections: {e}")
        raise RuntimeError(CacheErrorMessage.CLOSE_CACHE_FAILED) from e
