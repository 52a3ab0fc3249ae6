"""Scaleway Instances adapter."""

from typing import List, Optional

import httpx

from ...config import settings
from ...models.errors import ProviderLookupError
from ...models.vm import VMInstance
from .base import VMManager

COMMERCIAL_TYPES = {False: "DEV1-M", True: "GP1-XS"}
ZONES = {"US": "nl-ams-1", "EU": "fr-par-1"}
PAGE_SIZE = 100


class ScalewayManager(VMManager):
    """Pools backed by Scaleway instances."""

    provider = "Scaleway"

    @property
    def zone(self) -> str:
        return ZONES.get(self.region, "nl-ams-1")

    @property
    def api_base_url(self) -> str:
        return f"https://api.scaleway.com/instance/v1/zones/{self.zone}"

    def _request_headers(self) -> dict:
        return {"X-Auth-Token": settings.scw_secret_key or ""}

    async def _start_vm(self, name: str) -> str:
        client = self._get_http_client()
        response = await client.post(
            "/servers",
            json={
                "name": name,
                "commercial_type": COMMERCIAL_TYPES[self.large],
                "image": settings.scw_image,
                "organization": settings.scw_organization_id,
                "tags": [self.tag, self.id],
            },
        )
        response.raise_for_status()
        vm_id = response.json()["server"]["id"]

        response = await client.patch(
            f"/servers/{vm_id}/user_data/cloud-init",
            content=self.cloud_init(name),
            headers={"Content-Type": "text/plain"},
        )
        response.raise_for_status()
        await self._action(vm_id, "poweron")
        return vm_id

    async def _terminate_vm(self, vm_id: str) -> None:
        await self._action(vm_id, "terminate")

    async def _reboot_vm(self, vm_id: str) -> None:
        await self._action(vm_id, "reboot")

    async def _get_vm(self, vm_id: str) -> VMInstance:
        response = await self._get_http_client().get(f"/servers/{vm_id}")
        self._check(response, vm_id)
        return self._map_server(response.json()["server"])

    async def _list_vms(self) -> List[VMInstance]:
        response = await self._get_http_client().get(
            "/servers", params={"tags": self.id, "per_page": PAGE_SIZE}
        )
        response.raise_for_status()
        return [self._map_server(s) for s in response.json().get("servers", [])]

    async def _update_snapshot(self) -> Optional[str]:
        vms = await self._list_vms()
        if not vms:
            return None
        response = await self._action(vms[0].id, "backup")
        return str(response.json().get("task", {}).get("id", ""))

    async def _action(self, vm_id: str, action: str) -> httpx.Response:
        response = await self._get_http_client().post(
            f"/servers/{vm_id}/action", json={"action": action}
        )
        self._check(response, vm_id)
        return response

    def _check(self, response: httpx.Response, vm_id: str) -> None:
        if response.status_code == 404:
            raise ProviderLookupError(self.provider, vm_id)
        response.raise_for_status()

    def _map_server(self, server: dict) -> VMInstance:
        private_ip = server.get("private_ip")
        public_ip = (server.get("public_ip") or {}).get("address")
        gateway = settings.scw_gateway
        ip = (private_ip if gateway else public_ip) or public_ip or private_ip
        return VMInstance(
            id=server["id"],
            provider=self.provider,
            region=self.region,
            large=self.large,
            host=self._gateway_host(gateway, ip or ""),
            password=server.get("name", ""),
            created_at=server.get("creation_date"),
            ip=ip,
        )
