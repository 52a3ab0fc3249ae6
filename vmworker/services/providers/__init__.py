"""Provider adapters.

One VMManager variant per provider, selected by provider name. A pool whose
provider has no credentials configured is left unmanaged (None).
"""

from typing import Dict, Optional, Type

import structlog

from ...config import settings
from ...models.pool import PoolConfig
from ..store import PoolStore
from .base import VMManager, cloud_init
from .digitalocean import DigitalOceanManager
from .docker import DockerManager
from .hetzner import HetznerManager
from .scaleway import ScalewayManager

logger = structlog.get_logger(__name__)

PROVIDER_MANAGERS: Dict[str, Type[VMManager]] = {
    "Hetzner": HetznerManager,
    "DO": DigitalOceanManager,
    "Scaleway": ScalewayManager,
    "Docker": DockerManager,
}


def get_vm_manager(
    config: PoolConfig, store: Optional[PoolStore] = None
) -> Optional[VMManager]:
    """Build the adapter for a pool, or None if it cannot be managed."""
    manager_cls = PROVIDER_MANAGERS.get(config.provider)
    if manager_cls is None:
        logger.warning("Unknown provider", provider=config.provider, pool=config.key)
        return None
    if not settings.providers.has_credentials(config.provider):
        logger.debug("Provider not configured", provider=config.provider, pool=config.key)
        return None
    return manager_cls(config, store)


__all__ = [
    "VMManager",
    "HetznerManager",
    "DigitalOceanManager",
    "ScalewayManager",
    "DockerManager",
    "PROVIDER_MANAGERS",
    "get_vm_manager",
    "cloud_init",
]
