"""DigitalOcean adapter."""

from datetime import UTC, datetime
from typing import List, Optional

import httpx

from ...config import settings
from ...models.errors import ProviderLookupError
from ...models.vm import VMInstance
from .base import VMManager

SIZES = {False: "s-2vcpu-2gb", True: "s-4vcpu-8gb"}
REGIONS = {"US": "sfo3", "EU": "ams3"}
PAGE_SIZE = 200


class DigitalOceanManager(VMManager):
    """Pools backed by DigitalOcean droplets."""

    provider = "DO"
    api_base_url = "https://api.digitalocean.com/v2"

    def _request_headers(self) -> dict:
        return {"Authorization": f"Bearer {settings.do_token}"}

    @property
    def pool_tag(self) -> str:
        return f"{self.tag}-{self.id}"

    async def _start_vm(self, name: str) -> str:
        response = await self._get_http_client().post(
            "/droplets",
            json={
                "name": name,
                "region": REGIONS.get(self.region, "sfo3"),
                "size": SIZES[self.large],
                "image": settings.do_image,
                "ssh_keys": settings.split_csv(settings.do_ssh_keys),
                "private_networking": True,
                "user_data": self.cloud_init(name),
                "tags": [self.tag, self.pool_tag],
            },
        )
        response.raise_for_status()
        return str(response.json()["droplet"]["id"])

    async def _terminate_vm(self, vm_id: str) -> None:
        response = await self._get_http_client().delete(f"/droplets/{vm_id}")
        self._check(response, vm_id)

    async def _reboot_vm(self, vm_id: str) -> None:
        response = await self._get_http_client().post(
            f"/droplets/{vm_id}/actions", json={"type": "reboot"}
        )
        self._check(response, vm_id)

    async def _get_vm(self, vm_id: str) -> VMInstance:
        response = await self._get_http_client().get(f"/droplets/{vm_id}")
        self._check(response, vm_id)
        return self._map_droplet(response.json()["droplet"])

    async def _list_vms(self) -> List[VMInstance]:
        response = await self._get_http_client().get(
            "/droplets", params={"tag_name": self.pool_tag, "per_page": PAGE_SIZE}
        )
        response.raise_for_status()
        return [self._map_droplet(d) for d in response.json().get("droplets", [])]

    async def _update_snapshot(self) -> Optional[str]:
        vms = await self._list_vms()
        if not vms:
            return None
        source = min(vms, key=lambda vm: vm.created_at or datetime.now(UTC))
        response = await self._get_http_client().post(
            f"/droplets/{source.id}/actions",
            json={"type": "snapshot", "name": f"{self.tag}-{datetime.now(UTC):%Y%m%d%H%M}"},
        )
        self._check(response, source.id)
        return str(response.json()["action"]["id"])

    def _check(self, response: httpx.Response, vm_id: str) -> None:
        if response.status_code == 404:
            raise ProviderLookupError(self.provider, vm_id)
        response.raise_for_status()

    def _map_droplet(self, droplet: dict) -> VMInstance:
        addresses = {
            net.get("type"): net.get("ip_address")
            for net in (droplet.get("networks") or {}).get("v4", [])
        }
        gateway = settings.do_gateway
        ip = addresses.get("private") if gateway else addresses.get("public")
        ip = ip or addresses.get("public") or addresses.get("private")
        return VMInstance(
            id=str(droplet["id"]),
            provider=self.provider,
            region=self.region,
            large=self.large,
            host=self._gateway_host(gateway, ip or ""),
            password=droplet.get("name", ""),
            created_at=droplet.get("created_at"),
            ip=ip,
        )
