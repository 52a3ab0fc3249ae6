"""Provider adapter base class.

Every provider variant exposes the same capability set to the coordinator
and the replenishment loop. Variants implement only the vendor primitives
(start, terminate, reboot, get, list, snapshot); the lifecycle around them
(staging, cache eviction, reuse-or-terminate) lives here.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import TYPE_CHECKING, List, Optional

import httpx
import structlog

from ...config import settings
from ...models.errors import ProviderLookupError, ProvisioningError, TerminationError
from ...models.pool import PoolConfig
from ...models.vm import VMInstance
from ...utils.id_generator import generate_vm_name
from ..store import PoolKeys, PoolStore

if TYPE_CHECKING:
    from ..replenishment import ReplenishmentLoop

logger = structlog.get_logger(__name__)

HEALTH_PATH = "/healthz"


def cloud_init(
    password: str,
    image: str,
    resolution: str = "1280x720@30",
    vp9: bool = False,
    h264: bool = False,
    hetzner: bool = False,
) -> str:
    """Bootstrap script passed as user-data to cloud instances.

    Redirects port 80 to the browser container and re-runs on every boot so a
    rebooted instance comes back serving.
    """
    lines = [
        "#!/bin/bash",
        "iptables -t nat -A PREROUTING -p tcp --dport 80 -j REDIRECT --to-port 5000",
        "sed -i 's/scripts-user$/[scripts-user, always]/' /etc/cloud/cloud.cfg",
    ]
    if hetzner:
        lines.append(
            "sed -i 's/scripts-user$/[scripts-user, always]/' "
            "/etc/cloud/cloud.cfg.d/90-hetznercloud.cfg"
        )
    lines.append(f"PASSWORD={password}")
    lines.append(
        "docker run -d --rm --name=vbrowser -v /usr/share/fonts:/usr/share/fonts "
        '--log-opt max-size=1g --net=host --shm-size=1g --cap-add="SYS_ADMIN" '
        '-e DISPLAY=":99.0" '
        f'-e NEKO_SCREEN="{resolution}" '
        "-e NEKO_PASSWORD=$PASSWORD -e NEKO_PASSWORD_ADMIN=$PASSWORD "
        '-e NEKO_BIND=":5000" -e NEKO_EPR=":59000-59100" '
        f'-e NEKO_VP9="{1 if vp9 else 0}" -e NEKO_H264="{1 if h264 else 0}" '
        f"{image}"
    )
    return "\n".join(lines) + "\n"


class VMManager(ABC):
    """Adapter for one pool on one provider."""

    provider: str = ""
    reuse_vms: bool = True
    # Base URL for vendor REST calls; empty for non-HTTP providers
    api_base_url: str = ""

    def __init__(
        self,
        config: PoolConfig,
        store: Optional[PoolStore] = None,
        max_lifetime_minutes: Optional[int] = None,
    ):
        self.config = config
        self.id = config.key
        self.large = config.large
        self.region = config.region
        self.keys = PoolKeys(self.id)
        self.store = store or PoolStore()
        self.max_lifetime_minutes = (
            settings.vm_max_lifetime_minutes
            if max_lifetime_minutes is None
            else max_lifetime_minutes
        )
        self._http_client: Optional[httpx.AsyncClient] = None
        self._loop: Optional["ReplenishmentLoop"] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    def get_min_size(self) -> int:
        return self.config.min_size

    def get_min_buffer(self) -> int:
        return self.config.min_buffer

    def get_limit_size(self) -> int:
        return self.config.limit_size

    def get_ready_queue_key(self) -> str:
        return self.keys.ready

    def get_metadata_cache_key_prefix(self) -> str:
        return self.keys.cache_prefix

    def get_staging_key(self) -> str:
        return self.keys.staging

    def get_in_use_key(self) -> str:
        return self.keys.in_use

    @property
    def tag(self) -> str:
        """Label applied to every instance this adapter creates."""
        return settings.vbrowser_tag or "vbrowser"

    async def start_vm_wrapper(self) -> Optional[str]:
        """Provision one instance and put it in staging.

        Never raises; returns the new id or None on failure.
        """
        name = generate_vm_name()
        try:
            vm_id = await self._start_vm(name)
        except Exception as e:
            error = ProvisioningError(self.provider, str(e))
            logger.error(
                "Failed to provision VM",
                pool=self.id,
                name=name,
                error=error.message,
                exception_type=type(e).__name__,
            )
            return None

        try:
            await self.store.add_staging(self.id, vm_id)
        except Exception as e:
            logger.error(
                "Provisioned VM could not be staged",
                pool=self.id,
                vm_id=vm_id,
                error=str(e),
            )
            return vm_id

        logger.info("Provisioned VM", pool=self.id, vm_id=vm_id, name=name)
        return vm_id

    async def get_vm(self, vm_id: str) -> VMInstance:
        """Fetch an instance descriptor from the provider.

        Raises:
            ProviderLookupError: The provider does not know this id
        """
        return await self._get_vm(vm_id)

    async def list_vms(self) -> List[VMInstance]:
        """All instances this pool owns at the provider."""
        return await self._list_vms()

    async def reset_vm(self, vm_id: str) -> None:
        """Recycle an instance after use.

        Reboots and re-stages it when the pool reuses instances and it has not
        reached end of life, otherwise terminates it. Never raises.
        """
        try:
            await self.store.evict_cached(self.id, vm_id)
            await self.store.clear_in_use(self.id, vm_id)
            await self.store.release_lock(self.id, vm_id)

            if self.reuse_vms and not await self._past_end_of_life(vm_id):
                await self._reboot_vm(vm_id)
                await self.store.add_staging(self.id, vm_id)
                logger.info("Reset VM", pool=self.id, vm_id=vm_id)
            else:
                await self.terminate_vm_wrapper(vm_id)
        except ProviderLookupError:
            logger.info("Reset skipped, VM no longer exists", pool=self.id, vm_id=vm_id)
            await self._forget(vm_id)
        except Exception as e:
            logger.error(
                "Failed to reset VM",
                pool=self.id,
                vm_id=vm_id,
                error=str(e),
                exception_type=type(e).__name__,
            )

    async def terminate_vm_wrapper(self, vm_id: str) -> bool:
        """Terminate an instance and drop it from the pool's bookkeeping.

        Never raises; returns False if the provider call failed.
        """
        try:
            await self._terminate_vm(vm_id)
        except ProviderLookupError:
            # Already gone
            pass
        except Exception as e:
            error = TerminationError(self.provider, vm_id, str(e))
            logger.error(
                "Failed to terminate VM",
                pool=self.id,
                vm_id=vm_id,
                error=error.message,
                exception_type=type(e).__name__,
            )
            return False

        await self._forget(vm_id)
        logger.info("Terminated VM", pool=self.id, vm_id=vm_id)
        return True

    async def update_snapshot(self) -> Optional[str]:
        """Refresh the provider base image out of band."""
        try:
            result = await self._update_snapshot()
        except Exception as e:
            logger.error(
                "Snapshot update failed",
                pool=self.id,
                error=str(e),
                exception_type=type(e).__name__,
            )
            return None
        logger.info("Snapshot updated", pool=self.id, result=result)
        return result

    def run_background_jobs(self) -> "ReplenishmentLoop":
        """Start this pool's replenishment loop. Idempotent."""
        if self._loop is None:
            from ..replenishment import ReplenishmentLoop

            self._loop = ReplenishmentLoop(self)
            self._loop.start()
        return self._loop

    async def stop_background_jobs(self) -> None:
        if self._loop is not None:
            await self._loop.stop()
            self._loop = None

    async def close(self) -> None:
        await self.stop_background_jobs()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # Helpers shared by the variants
    # ------------------------------------------------------------------

    def cloud_init(self, password: str) -> str:
        return cloud_init(
            password,
            image=settings.vbrowser_image,
            resolution=settings.get_resolution(self.large),
            vp9=settings.vbrowser_vp9,
            h264=settings.vbrowser_h264,
            hetzner=self.provider == "Hetzner",
        )

    def _request_headers(self) -> dict:
        return {}

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.api_base_url,
                headers=self._request_headers(),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    def health_url(self, vm: VMInstance) -> str:
        return f"http://{vm.ip or vm.host}{HEALTH_PATH}"

    async def is_vm_ready(self, vm: VMInstance) -> bool:
        """Check the instance's health endpoint."""
        try:
            response = await self._get_http_client().get(
                self.health_url(vm), timeout=settings.vm_health_check_timeout
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.debug("VM not ready", pool=self.id, vm_id=vm.id, error=str(e))
            return False

    def _gateway_host(self, gateway: str, ip: str) -> str:
        """Public address for an instance, via the SSL gateway if one is set."""
        return f"{gateway}/?ip={ip}" if gateway else ip

    async def _past_end_of_life(self, vm_id: str) -> bool:
        if not self.max_lifetime_minutes:
            return False
        vm = await self._get_vm(vm_id)
        uptime = vm.uptime_minutes(datetime.now(UTC))
        return uptime is not None and uptime >= self.max_lifetime_minutes

    async def _forget(self, vm_id: str) -> None:
        try:
            await self.store.forget(self.id, vm_id)
        except Exception as e:
            logger.warning(
                "Failed to clear VM bookkeeping", pool=self.id, vm_id=vm_id, error=str(e)
            )

    # ------------------------------------------------------------------
    # Vendor primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def _start_vm(self, name: str) -> str:
        """Create an instance and return its provider id."""

    @abstractmethod
    async def _terminate_vm(self, vm_id: str) -> None:
        pass

    @abstractmethod
    async def _reboot_vm(self, vm_id: str) -> None:
        pass

    @abstractmethod
    async def _get_vm(self, vm_id: str) -> VMInstance:
        """Raises ProviderLookupError if the id is unknown."""

    @abstractmethod
    async def _list_vms(self) -> List[VMInstance]:
        pass

    @abstractmethod
    async def _update_snapshot(self) -> Optional[str]:
        pass
