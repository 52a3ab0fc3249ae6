"""Pool registry: the fixed table of pools and their adapters."""

from typing import Dict, Iterable, List, Optional

import structlog

from ..config import settings
from ..models.pool import PoolConfig, PoolStats, pool_key
from .providers import VMManager, get_vm_manager
from .replenishment import effective_target
from .store import PoolStore

logger = structlog.get_logger(__name__)


class PoolRegistry:
    """Maps pool keys to their adapters.

    Every configured pool key is present; pools whose provider lacks
    credentials map to None.
    """

    def __init__(self, managers: Dict[str, Optional[VMManager]]):
        self._managers = managers

    @classmethod
    def from_configs(
        cls, configs: Iterable[PoolConfig], store: Optional[PoolStore] = None
    ) -> "PoolRegistry":
        managers = {config.key: get_vm_manager(config, store) for config in configs}
        logger.info(
            "Pool registry built",
            pools=len(managers),
            enabled=[key for key, manager in managers.items() if manager is not None],
        )
        return cls(managers)

    @classmethod
    def from_settings(cls, store: Optional[PoolStore] = None) -> "PoolRegistry":
        return cls.from_configs(settings.get_pool_configs(), store)

    def __contains__(self, key: str) -> bool:
        return key in self._managers

    def keys(self) -> List[str]:
        return list(self._managers)

    def get(self, key: str) -> Optional[VMManager]:
        return self._managers.get(key)

    def resolve(self, provider: str, is_large: bool, region: str) -> Optional[VMManager]:
        return self.get(pool_key(provider, is_large, region))

    @property
    def enabled(self) -> List[VMManager]:
        return [manager for manager in self._managers.values() if manager is not None]

    def start_background_jobs(self) -> None:
        for manager in self.enabled:
            manager.run_background_jobs()

    async def close(self) -> None:
        for manager in self.enabled:
            try:
                await manager.close()
            except Exception as e:
                logger.warning("Error closing pool manager", pool=manager.id, error=str(e))

    async def get_stats(self, store: PoolStore) -> List[PoolStats]:
        """Point-in-time counts for every enabled pool."""
        stats = []
        for manager in self.enabled:
            config = manager.config
            stats.append(
                PoolStats(
                    pool=manager.id,
                    provider=manager.provider,
                    ready_count=await store.queue_length(manager.id),
                    staging_count=await store.staging_length(manager.id),
                    in_use_count=await store.in_use_count(manager.id),
                    target_size=effective_target(config),
                    limit_size=config.limit_size,
                    min_size=config.min_size,
                )
            )
        return stats
