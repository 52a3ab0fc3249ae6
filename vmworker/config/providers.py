"""Cloud provider credentials and provisioning settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class ProvidersConfig(BaseSettings):
    """Per-provider credentials.

    A provider whose credentials are absent gets no pool manager at all;
    requests addressed to its pools are rejected with a 400.
    """

    # Hetzner
    hetzner_token: str | None = Field(default=None)
    hetzner_gateway: str = Field(default="")
    hetzner_gateway_us: str = Field(default="")
    hetzner_networks: str = Field(default="")
    hetzner_networks_us: str = Field(default="")
    hetzner_ssh_keys: str = Field(default="")
    hetzner_image: str = Field(default="")

    # DigitalOcean
    do_token: str | None = Field(default=None)
    do_gateway: str = Field(default="")
    do_image: str = Field(default="")
    do_ssh_keys: str = Field(default="")

    # Scaleway
    scw_secret_key: str | None = Field(default=None)
    scw_organization_id: str | None = Field(default=None)
    scw_gateway: str = Field(default="")
    scw_image: str = Field(default="")

    # Remote Docker host
    docker_vm_host: str | None = Field(default=None)
    docker_vm_host_ssh_user: str = Field(default="root")

    def has_credentials(self, provider: str) -> bool:
        """Check whether the credentials a provider needs are configured."""
        if provider == "Hetzner":
            return bool(self.hetzner_token)
        if provider == "DO":
            return bool(self.do_token)
        if provider == "Scaleway":
            return bool(self.scw_secret_key and self.scw_organization_id)
        if provider == "Docker":
            return bool(self.docker_vm_host)
        return False

    class Config:
        env_prefix = ""
        extra = "ignore"
