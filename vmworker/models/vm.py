"""VM instance model shared by providers, the store and the API."""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel


class SizeClass(str, Enum):
    """Instance size class."""

    STANDARD = "standard"
    LARGE = "large"


class VMInstance(BaseModel):
    """One leased compute unit running the browser container.

    Serialized with camelCase keys, which is also the format written to the
    metadata cache. Provider-specific extra fields are carried through.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str
    provider: str
    region: str = ""
    large: bool = False
    host: str = ""
    password: str = Field(default="", alias="pass")
    created_at: Optional[datetime] = None
    # Address the health check reaches; never returned to callers
    ip: Optional[str] = None
    # Only ever set on the copy handed to a caller
    assign_time: Optional[int] = None

    @property
    def size_class(self) -> SizeClass:
        return SizeClass.LARGE if self.large else SizeClass.STANDARD

    def uptime_minutes(self, now: Optional[datetime] = None) -> Optional[float]:
        """Minutes since the instance was created, if known."""
        if self.created_at is None:
            return None
        now = now or datetime.now(UTC)
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return (now - created).total_seconds() / 60

    def with_assign_time(self, assign_time_ms: int) -> "VMInstance":
        """Return a copy stamped with the assignment time."""
        return self.model_copy(update={"assign_time": assign_time_ms})

    def to_cache(self) -> str:
        """Serialize for the metadata cache (assignTime is never persisted)."""
        return self.model_dump_json(
            by_alias=True, exclude={"assign_time"}, exclude_none=True
        )

    def to_response(self) -> dict:
        """JSON-compatible dict for API responses."""
        body = self.model_dump(
            mode="json", by_alias=True, exclude={"ip"}, exclude_none=True
        )
        body["sizeClass"] = self.size_class.value
        return body

    @classmethod
    def from_cache(cls, raw: Optional[str]) -> Optional["VMInstance"]:
        """Parse a cached descriptor, returning None if it is unusable."""
        if not raw or not raw.startswith("{"):
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                return None
            data.pop("assignTime", None)
            return cls.model_validate(data)
        except (ValueError, PydanticValidationError):
            return None
