"""Main FastAPI application for the VM pool coordination service."""

# Standard library imports
import sys
from contextlib import asynccontextmanager

# Third-party imports
import structlog
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

# Local application imports
from ._version import __version__
from .api import health, vm
from .config import settings
from .core.pool import redis_pool
from .models.errors import VMWorkerException
from .services.connections import ClientConnectionRegistry
from .services.health import HealthCheckService
from .services.registry import PoolRegistry
from .services.store import PoolStore
from .utils.error_handlers import (
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    vmworker_exception_handler,
)
from .utils.logging import setup_logging
from .utils.tasks import cancel_background_tasks

# Setup logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting vmworker", version=__version__)

    if settings.api_debug:
        logger.warning("Debug mode is enabled - disable in production")

    store = PoolStore(redis_pool.get_client())
    pool_registry = PoolRegistry.from_settings(store)
    connection_registry = ClientConnectionRegistry(redis_pool.create_client)
    health_service = HealthCheckService(redis_pool.get_client())

    app.state.store = store
    app.state.pool_registry = pool_registry
    app.state.connection_registry = connection_registry
    app.state.health_service = health_service

    if not pool_registry.enabled:
        logger.warning("No pools enabled - check provider credentials")

    pool_registry.start_background_jobs()
    connection_registry.start_reporter(store)

    result = await health_service.check_redis()
    if result.status.value == "healthy":
        logger.info("redis health check passed", response_time_ms=result.response_time_ms)
    else:
        logger.warning("redis health check failed", status=result.status.value, error=result.error)

    logger.info("vmworker startup completed", pools=pool_registry.keys())

    yield

    # Shutdown
    logger.info("Shutting down vmworker")

    try:
        await connection_registry.stop_reporter()
        await connection_registry.close_all()
    except Exception as e:
        logger.error("Error closing client connections", error=str(e))

    await pool_registry.close()
    await cancel_background_tasks()

    try:
        await redis_pool.close()
    except Exception as e:
        logger.error("Error closing Redis pool", error=str(e))

    logger.info("vmworker shutdown completed")


app = FastAPI(
    title="vmworker",
    description="VM pool assignment and replenishment service",
    version=__version__,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    debug=settings.api_debug,
    lifespan=lifespan,
)

# Register global error handlers
app.add_exception_handler(VMWorkerException, vmworker_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(vm.router, tags=["vm"])
app.include_router(health.router, tags=["health", "monitoring"])


def run_server():
    if settings.enable_https:
        if not settings.validate_ssl_files():
            logger.error("SSL configuration invalid - missing certificate files")
            sys.exit(1)

        logger.info(f"Starting HTTPS server on {settings.vmworker_host}:{settings.vmworker_port}")
        uvicorn.run(
            "vmworker.main:app",
            host=settings.vmworker_host,
            port=settings.vmworker_port,
            reload=settings.api_reload,
            log_level=settings.log_level.lower(),
            ssl_certfile=settings.ssl_cert_file,
            ssl_keyfile=settings.ssl_key_file,
        )
    else:
        logger.info(f"Starting HTTP server on {settings.vmworker_host}:{settings.vmworker_port}")
        uvicorn.run(
            "vmworker.main:app",
            host=settings.vmworker_host,
            port=settings.vmworker_port,
            reload=settings.api_reload,
            log_level=settings.log_level.lower(),
        )


if __name__ == "__main__":
    run_server()
