"""Service dependency injection for the coordination API.

The registries are built once in the application lifespan and stored on
``app.state``; these getters hand them to route handlers.
"""

# Standard library imports
from typing import Annotated

# Third-party imports
from fastapi import Depends, Request

# Local application imports
from ..services.connections import ClientConnectionRegistry
from ..services.health import HealthCheckService
from ..services.registry import PoolRegistry
from ..services.store import PoolStore


def get_pool_registry(request: Request) -> PoolRegistry:
    """Get the pool registry built at startup."""
    return request.app.state.pool_registry


def get_connection_registry(request: Request) -> ClientConnectionRegistry:
    """Get the per-requester connection registry."""
    return request.app.state.connection_registry


def get_store(request: Request) -> PoolStore:
    """Get the store over the shared connection pool."""
    return request.app.state.store


def get_health_service(request: Request) -> HealthCheckService:
    return request.app.state.health_service


PoolRegistryDep = Annotated[PoolRegistry, Depends(get_pool_registry)]
ConnectionRegistryDep = Annotated[ClientConnectionRegistry, Depends(get_connection_registry)]
StoreDep = Annotated[PoolStore, Depends(get_store)]
HealthServiceDep = Annotated[HealthCheckService, Depends(get_health_service)]
