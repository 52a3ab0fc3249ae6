"""Request bodies for the coordination endpoints."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .pool import pool_key


class PoolRequest(BaseModel):
    """Addresses one pool by provider, size class and region."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: str = Field(..., min_length=1, description="Provider name, e.g. Hetzner")
    is_large: bool = Field(default=False, description="Request the large size class")
    region: str = Field(default="", description="Region code, e.g. US")

    @property
    def pool_key(self) -> str:
        return pool_key(self.provider, self.is_large, self.region)


class AssignVMRequest(PoolRequest):
    """Body of POST /assignVM."""

    uid: str = Field(..., min_length=1, description="Requesting client id")


class ReleaseVMRequest(PoolRequest):
    """Body of POST /releaseVM.

    Lenient: a release that addresses no known pool still cancels the
    client's pending assignment.
    """

    provider: str = Field(default="", description="Provider name, e.g. Hetzner")
    uid: str = Field(default="", description="Requesting client id")
    id: Optional[str] = Field(default=None, description="Instance to reset, if any")


class UpdateSnapshotRequest(PoolRequest):
    """Body of POST /updateSnapshot.

    A body that names no provider addresses no pool and gets an empty answer.
    """

    provider: str = Field(default="", description="Provider name, e.g. Hetzner")
