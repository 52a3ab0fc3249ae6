"""Docker host adapter.

Runs browser containers directly on a single Docker host reached over SSH.
Containers run with auto-remove, so instances are never reused.
"""

import asyncio
from datetime import datetime
from functools import partial
from typing import List, Optional
from urllib.parse import urlparse

import docker
import structlog
from docker.errors import NotFound

from ...config import settings
from ...models.errors import ProviderLookupError
from ...models.vm import VMInstance
from .base import VMManager

logger = structlog.get_logger(__name__)

CONTAINER_PORT = "5000/tcp"
POOL_LABEL = "vbrowser.pool"


def parse_docker_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Docker's RFC 3339 timestamps, which carry nanoseconds."""
    if not value:
        return None
    value = value.rstrip("Z")
    if "." in value:
        whole, fraction = value.split(".", 1)
        value = f"{whole}.{fraction[:6]}"
    return datetime.fromisoformat(value + "+00:00")


class DockerManager(VMManager):
    """Pool of containers on a remote Docker host."""

    provider = "Docker"
    reuse_vms = False

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._docker: Optional[docker.DockerClient] = None

    @property
    def docker_url(self) -> str:
        host = settings.docker_vm_host or ""
        if "://" in host:
            return host
        return f"ssh://{settings.docker_vm_host_ssh_user}@{host}"

    @property
    def hostname(self) -> str:
        return urlparse(self.docker_url).hostname or ""

    def _client(self) -> docker.DockerClient:
        if self._docker is None:
            logger.info("Connecting to Docker host", host=self.hostname)
            self._docker = docker.DockerClient(
                base_url=self.docker_url, use_ssh_client=True, timeout=60
            )
        return self._docker

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _environment(self, password: str) -> dict:
        return {
            "DISPLAY": ":99.0",
            "NEKO_SCREEN": settings.get_resolution(self.large),
            "NEKO_PASSWORD": password,
            "NEKO_PASSWORD_ADMIN": password,
            "NEKO_BIND": ":5000",
            "NEKO_EPR": ":59000-59100",
            "NEKO_VP9": "1" if settings.vbrowser_vp9 else "0",
            "NEKO_H264": "1" if settings.vbrowser_h264 else "0",
        }

    async def _start_vm(self, name: str) -> str:
        container = await self._run(
            self._client().containers.run,
            settings.vbrowser_image,
            detach=True,
            remove=True,
            name=name,
            shm_size="1g",
            cap_add=["SYS_ADMIN"],
            environment=self._environment(name),
            ports={CONTAINER_PORT: None},
            labels={POOL_LABEL: self.id, settings.vbrowser_tag or "vbrowser": ""},
        )
        return container.id

    async def _terminate_vm(self, vm_id: str) -> None:
        container = await self._get_container(vm_id)
        await self._run(container.remove, force=True)

    async def _reboot_vm(self, vm_id: str) -> None:
        container = await self._get_container(vm_id)
        await self._run(container.restart)

    async def _get_vm(self, vm_id: str) -> VMInstance:
        return self._map_container(await self._get_container(vm_id))

    async def _list_vms(self) -> List[VMInstance]:
        containers = await self._run(
            self._client().containers.list,
            filters={"label": f"{POOL_LABEL}={self.id}"},
        )
        return [self._map_container(c) for c in containers]

    async def _update_snapshot(self) -> Optional[str]:
        """Pull the latest browser image onto the host."""
        image = await self._run(self._client().images.pull, settings.vbrowser_image)
        return image.id

    async def _get_container(self, vm_id: str):
        try:
            return await self._run(self._client().containers.get, vm_id)
        except NotFound as e:
            raise ProviderLookupError(self.provider, vm_id) from e

    def _map_container(self, container) -> VMInstance:
        bindings = (container.ports or {}).get(CONTAINER_PORT) or []
        port = bindings[0].get("HostPort") if bindings else None
        address = f"{self.hostname}:{port}" if port else self.hostname
        return VMInstance(
            id=container.id,
            provider=self.provider,
            region=self.region,
            large=self.large,
            host=address,
            password=container.name,
            created_at=parse_docker_timestamp(container.attrs.get("Created")),
            ip=address,
        )

    async def close(self) -> None:
        await super().close()
        if self._docker is not None:
            self._docker.close()
            self._docker = None
