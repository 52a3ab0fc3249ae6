"""FastAPI dependencies."""

from .services import (
    ConnectionRegistryDep,
    HealthServiceDep,
    PoolRegistryDep,
    StoreDep,
    get_connection_registry,
    get_health_service,
    get_pool_registry,
    get_store,
)

__all__ = [
    "get_pool_registry",
    "get_connection_registry",
    "get_store",
    "get_health_service",
    "PoolRegistryDep",
    "ConnectionRegistryDep",
    "StoreDep",
    "HealthServiceDep",
]
