"""Connection pool management.

This module provides the shared async Redis connection pool used by the
pool managers, replenishment loops and health checks, plus a factory for the
short-lived dedicated connections opened per coordination request.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)


class RedisPool:
    """Centralized async Redis connection pool.

    Usage:
        client = redis_pool.get_client()
        await client.rpush("key", "value")
    """

    def __init__(self, url: Optional[str] = None):
        self._url = url
        self._pool: Optional[redis.ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialized = False

    @property
    def url(self) -> str:
        return self._url or settings.get_redis_url()

    def _initialize(self) -> None:
        """Initialize the connection pool lazily."""
        if self._initialized:
            return

        redis_url = self.url
        self._pool = redis.ConnectionPool.from_url(
            redis_url,
            max_connections=settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=float(settings.redis_socket_connect_timeout),
            retry_on_timeout=True,
        )
        self._client = redis.Redis(connection_pool=self._pool)
        self._initialized = True
        logger.info(
            "Redis connection pool initialized",
            max_connections=settings.redis_max_connections,
            url=redis_url.split("@")[-1],  # Don't log password
        )

    def get_client(self) -> redis.Redis:
        """Get an async Redis client backed by the shared pool."""
        if not self._initialized:
            self._initialize()
        assert self._client is not None, "Redis client not initialized"
        return self._client

    def create_client(self) -> redis.Redis:
        """Open a dedicated client outside the shared pool.

        Blocking pops hold their connection for up to the full wait budget, so
        each coordination request gets its own connection that can be closed
        independently.
        """
        return redis.Redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=float(settings.redis_socket_connect_timeout),
        )

    @property
    def pool_stats(self) -> dict:
        """Get connection pool statistics."""
        if not self._pool:
            return {"initialized": False}

        return {
            "initialized": True,
            "max_connections": self._pool.max_connections,
        }

    async def close(self) -> None:
        """Close the connection pool and release all connections."""
        if self._client:
            await self._client.aclose()
            logger.info("Redis connection pool closed")
        self._pool = None
        self._client = None
        self._initialized = False


# Global Redis pool instance
redis_pool = RedisPool()
