"""Health check and monitoring endpoints."""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import settings
from ..dependencies.services import HealthServiceDep, PoolRegistryDep, StoreDep
from ..services.health import HealthStatus

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/health", summary="Basic health check")
async def basic_health_check():
    """Liveness check; touches no dependencies."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
        "service": "vmworker",
    }


@router.get("/health/redis", summary="Redis health check")
async def redis_health_check(health_service: HealthServiceDep):
    """Check Redis connectivity and performance."""
    try:
        result = await health_service.check_redis()

        if result.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=result.to_dict())
        return JSONResponse(status_code=200, content=result.to_dict())

    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={
                "service": "redis",
                "status": "unhealthy",
                "error": str(e) if settings.api_debug else "Redis check failed",
            },
        )


@router.get("/stats", summary="Pool statistics")
async def pool_stats(pools: PoolRegistryDep, store: StoreDep):
    """Per-pool counts, recent assignment latency and waiting requesters."""
    try:
        stats = await pools.get_stats(store)
        latencies = await store.recent_latencies()
        waiting = await store.get_waiting()
    except Exception as e:
        logger.error("Failed to collect pool stats", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"error": str(e) if settings.api_debug else "Stats unavailable"},
        )

    return {
        "pools": {s.pool: s.to_dict() for s in stats},
        "assignments": {
            "samples": len(latencies),
            "avg_ms": round(sum(latencies) / len(latencies), 2) if latencies else None,
        },
        "waiting": waiting,
        "timestamp": datetime.now(UTC).isoformat(),
    }
