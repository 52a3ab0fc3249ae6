"""Pool configuration and statistics models.

A pool is one provider + size class + region bucket. Its key is the
concatenation ``provider + ("Large" if large else "") + region`` and is the
canonical identifier used for routing, store namespacing and lock keys.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Optional, Tuple

HourRange = Tuple[int, int]


def pool_key(provider: str, is_large: bool, region: str) -> str:
    """Build the canonical pool identifier."""
    return f"{provider}{'Large' if is_large else ''}{region}"


def parse_hour_range(value: Optional[str]) -> Optional[HourRange]:
    """Parse a ``"start,end"`` UTC hour pair.

    Returns None for an empty value. Raises ValueError if malformed.
    """
    if value is None or not value.strip():
        return None
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        raise ValueError(f"Expected 'start,end' hour pair, got {value!r}")
    start, end = int(parts[0]), int(parts[1])
    for hour in (start, end):
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range 0-23: {hour}")
    if start == end:
        raise ValueError(f"Empty hour range: {value!r}")
    return start, end


@dataclass(frozen=True)
class PoolConfig:
    """Immutable sizing policy for one pool."""

    provider: str
    large: bool
    region: str
    limit_size: int = 0  # 0 = unbounded
    min_size: int = 0  # 0 = scale from zero
    min_buffer: int = 0
    ramp_up_hours: Optional[HourRange] = None
    ramp_down_hours: Optional[HourRange] = None
    min_uptime_minutes: int = 0
    session_limit_seconds: int = 10800

    @property
    def key(self) -> str:
        return pool_key(self.provider, self.large, self.region)

    @property
    def scale_from_zero(self) -> bool:
        return self.min_size == 0


@dataclass
class PoolStats:
    """Point-in-time view of a pool for monitoring."""

    pool: str
    provider: str
    ready_count: int
    staging_count: int
    in_use_count: int
    target_size: int
    limit_size: int
    min_size: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "pool": self.pool,
            "provider": self.provider,
            "ready": self.ready_count,
            "staging": self.staging_count,
            "in_use": self.in_use_count,
            "target": self.target_size,
            "limit": self.limit_size,
            "min_size": self.min_size,
            "timestamp": self.timestamp.isoformat(),
        }
