"""Pool services: store, providers, assignment and replenishment."""

from .assignment import AssignmentCoordinator
from .connections import ClientConnectionRegistry
from .registry import PoolRegistry
from .replenishment import ReplenishmentLoop, effective_target
from .store import PoolKeys, PoolStore

__all__ = [
    "AssignmentCoordinator",
    "ClientConnectionRegistry",
    "PoolRegistry",
    "ReplenishmentLoop",
    "effective_target",
    "PoolKeys",
    "PoolStore",
]
