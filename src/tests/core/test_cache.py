"""Test Valkey/Redis connection management and job locks."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from redis.asyncio import Redis

from modcompat.core.cache import (
    LOCK_PREFIX,
    CacheErrorMessage,
    acquire_lock,
    cache_client,
    check_cache_connection,
    close_cache,
    create_client,
    get_cache,
    job_lock,
    release_lock,
)


class TestCreateClient:
    """Test create_client() function."""

    def test_create_client_success(self) -> None:
        """Test successful client creation with valid config."""
        with patch("modcompat.core.cache.settings") as mock_settings:
            mock_settings.valkey_url = "redis://localhost:6379/0"

            with patch("modcompat.core.cache.redis.from_url") as mock_from_url:
                mock_client = MagicMock(spec=Redis)
                mock_from_url.return_value = mock_client

                result = create_client()

                assert result is mock_client
                mock_from_url.assert_called_once()
                call_kwargs = mock_from_url.call_args[1]
                assert call_kwargs["encoding"] == "utf-8"
                assert call_kwargs["decode_responses"] is True
                assert call_kwargs["max_connections"] == 20
                assert call_kwargs["socket_connect_timeout"] == 5
                assert call_kwargs["socket_keepalive"] is True
                assert call_kwargs["health_check_interval"] == 30

    def test_create_client_without_url_uses_fakeredis(self) -> None:
        """Local runs without VALKEY_URL still get a working lock store."""
        with patch("modcompat.core.cache.settings") as mock_settings:
            mock_settings.valkey_url = ""

            with patch("modcompat.core.cache.redis.from_url") as mock_from_url:
                result = create_client()

                mock_from_url.assert_not_called()
                assert result is not None

    def test_create_client_missing_url_without_fakeredis(self) -> None:
        with patch("modcompat.core.cache.settings") as mock_settings, patch(
            "modcompat.core.cache.FAKEREDIS_AVAILABLE", False
        ):
            mock_settings.valkey_url = ""

            with pytest.raises(ValueError, match=CacheErrorMessage.CREATE_CLIENT_NO_URL):
                create_client()

    def test_create_client_unexpected_error_masked(self) -> None:
        """Test that unexpected errors during client creation are masked."""
        with patch("modcompat.core.cache.settings") as mock_settings:
            mock_settings.valkey_url = "redis://localhost:6379/0"

            with patch("modcompat.core.cache.redis.from_url") as mock_from_url:
                mock_from_url.side_effect = RuntimeError("Unexpected Redis driver error")

                with pytest.raises(ValueError, match=CacheErrorMessage.CREATE_CLIENT_FAILED):
                    create_client()

    def test_cache_client_instance_created(self) -> None:
        assert cache_client is not None


class TestGetCache:
    """Test get_cache() async dependency."""

    async def test_get_cache_success(self) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.ping = AsyncMock()

        with patch("modcompat.core.cache.cache_client", mock_client):
            result = await get_cache()

            assert result is mock_client
            mock_client.ping.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [ConnectionError("Cannot connect to Valkey"), TimeoutError("Connection timeout")],
    )
    async def test_get_cache_failure(self, error: Exception) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.ping = AsyncMock(side_effect=error)

        with patch("modcompat.core.cache.cache_client", mock_client):
            with pytest.raises(RuntimeError, match=CacheErrorMessage.GET_CACHE_FAILED):
                await get_cache()


class TestCheckCacheConnection:
    """Test check_cache_connection() function."""

    async def test_check_connection_success(self) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.ping = AsyncMock()

        with patch("modcompat.core.cache.cache_client", mock_client):
            assert await check_cache_connection() is True
            mock_client.ping.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionError("Cannot connect to Valkey"),
            TimeoutError("Connection timeout"),
            Exception("Unexpected error"),
        ],
    )
    async def test_check_connection_failure(self, error: Exception) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.ping = AsyncMock(side_effect=error)

        with patch("modcompat.core.cache.cache_client", mock_client):
            assert await check_cache_connection() is False


class TestJobLocks:
    """Test acquire_lock(), release_lock() and job_lock()."""

    async def test_acquire_once(self, cache: Redis) -> None:
        token = await acquire_lock(cache, "resolve-versions:all", 60)

        assert token is not None
        assert await cache.get(f"{LOCK_PREFIX}resolve-versions:all") == token
        assert await acquire_lock(cache, "resolve-versions:all", 60) is None

    async def test_lock_expires(self, cache: Redis) -> None:
        await acquire_lock(cache, "propagate-pins", 60)

        assert await cache.ttl(f"{LOCK_PREFIX}propagate-pins") > 0

    async def test_release_by_owner(self, cache: Redis) -> None:
        token = await acquire_lock(cache, "propagate-pins", 60)
        assert token is not None

        assert await release_lock(cache, "propagate-pins", token) is True
        assert await acquire_lock(cache, "propagate-pins", 60) is not None

    async def test_release_by_stranger_ignored(self, cache: Redis) -> None:
        """A lock that expired and was re-acquired stays with its new owner."""
        await acquire_lock(cache, "propagate-pins", 60)

        assert await release_lock(cache, "propagate-pins", "someone-else") is False
        assert await cache.get(f"{LOCK_PREFIX}propagate-pins") is not None

    async def test_job_lock_context(self, cache: Redis) -> None:
        async with job_lock("resolve-versions:mod", 60, client=cache) as acquired:
            assert acquired is True
            async with job_lock("resolve-versions:mod", 60, client=cache) as nested:
                assert nested is False

        assert await cache.get(f"{LOCK_PREFIX}resolve-versions:mod") is None

    async def test_job_lock_released_on_error(self, cache: Redis) -> None:
        with pytest.raises(RuntimeError):
            async with job_lock("resolve-versions:mod", 60, client=cache):
                raise RuntimeError("sweep failed")

        assert await cache.get(f"{LOCK_PREFIX}resolve-versions:mod") is None


class TestCloseCache:
    """Test close_cache() function."""

    async def test_close_cache_success(self) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.aclose = AsyncMock()
        mock_pool = AsyncMock()
        mock_pool.disconnect = AsyncMock()
        mock_client.connection_pool = mock_pool

        with patch("modcompat.core.cache.cache_client", mock_client):
            await close_cache()

            mock_client.aclose.assert_called_once()
            mock_pool.disconnect.assert_called_once()

    async def test_close_cache_close_failure(self) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.aclose = AsyncMock(side_effect=Exception("Close error"))
        mock_client.connection_pool = AsyncMock()

        with patch("modcompat.core.cache.cache_client", mock_client):
            with pytest.raises(RuntimeError, match=CacheErrorMessage.CLOSE_CACHE_FAILED):
                await close_cache()

    async def test_close_cache_disconnect_failure(self) -> None:
        mock_client = AsyncMock(spec=Redis)
        mock_client.aclose = AsyncMock()
        mock_pool = AsyncMock()
        mock_pool.disconnect = AsyncMock(side_effect=Exception("Disconnect error"))
        mock_client.connection_pool = mock_pool

        with patch("modcompat.core.cache.cache_client", mock_client):
            with pytest.raises(RuntimeError, match=CacheErrorMessage.CLOSE_CACHE_FAILED):
                await close_cache()
