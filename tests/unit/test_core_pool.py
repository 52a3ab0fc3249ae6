"""Unit tests for core Redis pool."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vmworker.core.pool import RedisPool


class TestRedisPoolInit:
    """Tests for RedisPool initialization."""

    def test_init(self):
        """Test pool initialization."""
        pool = RedisPool()

        assert pool._pool is None
        assert pool._client is None
        assert pool._initialized is False

    def test_explicit_url(self):
        """Test an explicit URL overrides settings."""
        pool = RedisPool("redis://cache:6380/2")

        assert pool.url == "redis://cache:6380/2"


class TestRedisPoolInitialize:
    """Tests for _initialize method."""

    def test_initialize_already_initialized(self):
        """Test _initialize returns early if already initialized."""
        pool = RedisPool()
        pool._initialized = True
        existing = MagicMock()
        pool._pool = existing

        pool._initialize()

        assert pool._pool is existing

    def test_initialize_creates_pool(self):
        """Test _initialize creates connection pool."""
        pool = RedisPool("redis://localhost:6379/0")

        with patch("vmworker.core.pool.redis.ConnectionPool") as mock_pool:
            mock_pool.from_url.return_value = MagicMock()

            with patch("vmworker.core.pool.redis.Redis") as mock_redis:
                mock_redis.return_value = MagicMock()

                pool._initialize()

        assert pool._initialized is True
        assert pool._client is not None
        _, kwargs = mock_pool.from_url.call_args
        assert kwargs["decode_responses"] is True


class TestGetClient:
    """Tests for get_client method."""

    def test_get_client_initializes_if_needed(self):
        """Test get_client initializes the pool if not initialized."""
        pool = RedisPool()

        with patch.object(pool, "_initialize") as mock_init:
            pool._client = MagicMock()
            mock_init.side_effect = lambda: setattr(pool, "_initialized", True)

            pool.get_client()

            mock_init.assert_called_once()

    def test_get_client_returns_client(self):
        """Test get_client returns the client."""
        pool = RedisPool()
        mock_client = MagicMock()
        pool._client = mock_client
        pool._initialized = True

        assert pool.get_client() is mock_client


class TestCreateClient:
    """Tests for create_client method."""

    def test_dedicated_client_is_not_pooled(self):
        """Test each call opens a separate client."""
        pool = RedisPool("redis://localhost:6379/0")

        with patch("vmworker.core.pool.redis.Redis.from_url") as mock_from_url:
            mock_from_url.side_effect = lambda *a, **kw: MagicMock()

            first = pool.create_client()
            second = pool.create_client()

        assert first is not second
        assert mock_from_url.call_count == 2
        assert mock_from_url.call_args.args == ("redis://localhost:6379/0",)


class TestPoolStats:
    """Tests for pool_stats property."""

    def test_pool_stats_not_initialized(self):
        """Test pool_stats when pool not initialized."""
        assert RedisPool().pool_stats == {"initialized": False}

    def test_pool_stats_initialized(self):
        """Test pool_stats when pool is initialized."""
        pool = RedisPool()
        mock_pool = MagicMock()
        mock_pool.max_connections = 20
        pool._pool = mock_pool

        stats = pool.pool_stats

        assert stats["initialized"] is True
        assert stats["max_connections"] == 20


class TestClose:
    """Tests for close method."""

    @pytest.mark.asyncio
    async def test_close_resets_state(self):
        """Test close releases the client and resets the pool."""
        pool = RedisPool()
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock()
        pool._client = mock_client
        pool._pool = MagicMock()
        pool._initialized = True

        await pool.close()

        mock_client.aclose.assert_awaited_once()
        assert pool._client is None
        assert pool._initialized is False

    @pytest.mark.asyncio
    async def test_close_without_client(self):
        """Test close when never initialized."""
        pool = RedisPool()

        await pool.close()

        assert pool._initialized is False
