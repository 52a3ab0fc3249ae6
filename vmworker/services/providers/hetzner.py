"""Hetzner Cloud adapter."""

from datetime import UTC, datetime
from typing import List, Optional

import httpx
import structlog

from ...config import settings
from ...models.errors import ProviderLookupError
from ...models.vm import VMInstance
from .base import VMManager

logger = structlog.get_logger(__name__)

SERVER_TYPES = {False: "cpx11", True: "cpx31"}
LOCATIONS = {"US": "ash", "EU": "nbg1"}
PAGE_SIZE = 50


class HetznerManager(VMManager):
    """Pools backed by Hetzner Cloud servers."""

    provider = "Hetzner"
    api_base_url = "https://api.hetzner.cloud/v1"

    def _request_headers(self) -> dict:
        return {"Authorization": f"Bearer {settings.hetzner_token}"}

    @property
    def gateway(self) -> str:
        if self.region == "US" and settings.hetzner_gateway_us:
            return settings.hetzner_gateway_us
        return settings.hetzner_gateway

    @property
    def networks(self) -> List[int]:
        raw = settings.hetzner_networks_us if self.region == "US" else settings.hetzner_networks
        return [int(n) for n in settings.split_csv(raw)]

    @property
    def label_selector(self) -> str:
        return f"{self.tag},pool={self.id}"

    async def _start_vm(self, name: str) -> str:
        payload = {
            "name": name,
            "server_type": SERVER_TYPES[self.large],
            "image": settings.hetzner_image,
            "location": LOCATIONS.get(self.region, "ash"),
            "start_after_create": True,
            "ssh_keys": [int(k) for k in settings.split_csv(settings.hetzner_ssh_keys)],
            "user_data": self.cloud_init(name),
            "labels": {self.tag: "", "pool": self.id},
        }
        if self.networks:
            payload["networks"] = self.networks
        response = await self._get_http_client().post("/servers", json=payload)
        response.raise_for_status()
        return str(response.json()["server"]["id"])

    async def _terminate_vm(self, vm_id: str) -> None:
        response = await self._get_http_client().delete(f"/servers/{vm_id}")
        self._check(response, vm_id)

    async def _reboot_vm(self, vm_id: str) -> None:
        response = await self._get_http_client().post(f"/servers/{vm_id}/actions/reboot")
        self._check(response, vm_id)

    async def _get_vm(self, vm_id: str) -> VMInstance:
        response = await self._get_http_client().get(f"/servers/{vm_id}")
        self._check(response, vm_id)
        return self._map_server(response.json()["server"])

    async def _list_vms(self) -> List[VMInstance]:
        client = self._get_http_client()
        vms: List[VMInstance] = []
        page: Optional[int] = 1
        while page:
            response = await client.get(
                "/servers",
                params={
                    "label_selector": self.label_selector,
                    "page": page,
                    "per_page": PAGE_SIZE,
                },
            )
            response.raise_for_status()
            data = response.json()
            vms.extend(self._map_server(server) for server in data.get("servers", []))
            page = data.get("meta", {}).get("pagination", {}).get("next_page")
        return vms

    async def _update_snapshot(self) -> Optional[str]:
        """Snapshot the oldest pool server as the new base image."""
        vms = await self._list_vms()
        if not vms:
            logger.warning("No server available to snapshot", pool=self.id)
            return None
        source = min(vms, key=lambda vm: vm.created_at or datetime.now(UTC))
        response = await self._get_http_client().post(
            f"/servers/{source.id}/actions/create_image",
            json={
                "type": "snapshot",
                "description": f"{self.tag}-{datetime.now(UTC):%Y%m%d%H%M}",
            },
        )
        self._check(response, source.id)
        return str(response.json()["image"]["id"])

    def _check(self, response: httpx.Response, vm_id: str) -> None:
        if response.status_code == 404:
            raise ProviderLookupError(self.provider, vm_id)
        response.raise_for_status()

    def _map_server(self, server: dict) -> VMInstance:
        private_nets = server.get("private_net") or []
        private_ip = private_nets[0].get("ip") if private_nets else None
        public_ip = ((server.get("public_net") or {}).get("ipv4") or {}).get("ip")
        ip = private_ip if self.gateway and private_ip else public_ip
        return VMInstance(
            id=str(server["id"]),
            provider=self.provider,
            region=self.region,
            large=self.large,
            host=self._gateway_host(self.gateway, ip or ""),
            password=server.get("name", ""),
            created_at=server.get("created"),
            ip=ip,
        )
