"""Core infrastructure shared across services."""

from .pool import RedisPool, redis_pool

__all__ = ["RedisPool", "redis_pool"]
