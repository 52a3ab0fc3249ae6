"""Health check service for the pool store."""

# Standard library imports
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

# Third-party imports
import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status enumeration."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


class HealthCheckResult:
    """Health check result container."""

    def __init__(
        self,
        service: str,
        status: HealthStatus,
        response_time_ms: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        self.service = service
        self.status = status
        self.response_time_ms = response_time_ms
        self.details = details or {}
        self.error = error
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "service": self.service,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.response_time_ms is not None:
            result["response_time_ms"] = round(self.response_time_ms, 2)
        if self.details:
            result["details"] = self.details
        if self.error:
            result["error"] = self.error
        return result


class HealthCheckService:
    """Checks the Redis instance every pool depends on."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self._redis_client = redis_client

    async def check_redis(self) -> HealthCheckResult:
        """Check Redis connectivity and round-trip latency."""
        start_time = time.time()

        try:
            if not self._redis_client:
                from ..core.pool import redis_pool

                self._redis_client = redis_pool.get_client()

            await self._redis_client.ping()
            info = await self._redis_client.info()
            response_time = (time.time() - start_time) * 1000

            status = HealthStatus.HEALTHY
            if response_time > 1000:
                status = HealthStatus.DEGRADED

            return HealthCheckResult(
                service="redis",
                status=status,
                response_time_ms=response_time,
                details={
                    "version": info.get("redis_version", "unknown"),
                    "connected_clients": info.get("connected_clients", 0),
                    "memory_usage_mb": round(info.get("used_memory", 0) / (1024 * 1024), 2),
                    "uptime_seconds": info.get("uptime_in_seconds", 0),
                },
            )

        except Exception as e:
            response_time = (time.time() - start_time) * 1000
            logger.error(
                "Redis health check failed",
                error=str(e),
                response_time_ms=response_time,
            )
            return HealthCheckResult(
                service="redis",
                status=HealthStatus.UNHEALTHY,
                response_time_ms=response_time,
                error=str(e),
            )
