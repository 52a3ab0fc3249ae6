"""Redis-backed pool store.

All cross-process pool state lives in Redis:

- ready queue: ``vmpool:{pool}:ready`` list, ids ready for assignment, FIFO
- metadata cache: ``vmpool:{pool}:cache:{id}`` serialized descriptor, no TTL
- staging: ``vmpool:{pool}:staging`` list plus a readiness-attempt hash
- in use: ``vmpool:{pool}:in_use`` hash of id -> assignment time (ms)
- locks: ``lock:{pool}:{id}`` exclusivity marker, 300s TTL
- metrics: rolling assignment latency list and the waiting-requester gauge

A PoolStore wraps whichever client it is given, so the same code runs over
the shared pool and over the dedicated per-request connections.
"""

import functools
from dataclasses import dataclass
from typing import Dict, List, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..core.pool import redis_pool
from ..models.errors import StoreUnavailable
from ..models.vm import VMInstance

logger = structlog.get_logger(__name__)

LATENCY_KEY = "vmpool:metrics:assign_ms"
WAITING_KEY = "vmpool:metrics:waiting"
LATENCY_WINDOW = 100


@dataclass(frozen=True)
class PoolKeys:
    """Redis key names for one pool."""

    pool: str

    @property
    def ready(self) -> str:
        return f"vmpool:{self.pool}:ready"

    @property
    def cache_prefix(self) -> str:
        return f"vmpool:{self.pool}:cache:"

    def cache(self, vm_id: str) -> str:
        return f"{self.cache_prefix}{vm_id}"

    @property
    def staging(self) -> str:
        return f"vmpool:{self.pool}:staging"

    @property
    def staging_attempts(self) -> str:
        return f"vmpool:{self.pool}:staging_attempts"

    @property
    def in_use(self) -> str:
        return f"vmpool:{self.pool}:in_use"

    @property
    def scale_trigger(self) -> str:
        return f"vmpool:{self.pool}:scale_trigger"

    def lock(self, vm_id: str) -> str:
        return f"lock:{self.pool}:{vm_id}"


def _store_errors(func):
    """Surface Redis connectivity failures as StoreUnavailable."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(str(e)) from e

    return wrapper


class PoolStore:
    """Pool state operations over a single Redis client."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        """Initialize the store.

        Args:
            redis_client: Optional Redis client, uses shared pool if not provided
        """
        self.redis = redis_client or redis_pool.get_client()

    # Ready queue

    @_store_errors
    async def queue_length(self, pool: str) -> int:
        return int(await self.redis.llen(PoolKeys(pool).ready))

    @_store_errors
    async def pop_ready(self, pool: str, timeout: int) -> Optional[str]:
        """Blocking pop from the head of the ready queue.

        Returns None if nothing became available within ``timeout`` seconds.
        """
        result = await self.redis.blpop([PoolKeys(pool).ready], timeout=timeout)
        if not result:
            return None
        _, vm_id = result
        return vm_id

    @staticmethod
    def _queue_ready(pipe, keys: PoolKeys, vm_id: str) -> None:
        pipe.lrem(keys.ready, 0, vm_id)
        pipe.rpush(keys.ready, vm_id)

    @_store_errors
    async def push_ready(self, pool: str, vm_id: str) -> None:
        """Append an id to the ready queue, removing any earlier copy.

        Seeds the queue directly, without the staging bookkeeping of
        promote(). The replenishment loop only reaches ready through
        promote(), which queues the id the same way.
        """
        pipe = self.redis.pipeline(transaction=True)
        self._queue_ready(pipe, PoolKeys(pool), vm_id)
        await pipe.execute()

    @_store_errors
    async def remove_ready(self, pool: str, vm_id: str) -> bool:
        """Remove an id from the ready queue. True if this call removed it."""
        removed = await self.redis.lrem(PoolKeys(pool).ready, 1, vm_id)
        return int(removed) > 0

    @_store_errors
    async def list_ready(self, pool: str) -> List[str]:
        return list(await self.redis.lrange(PoolKeys(pool).ready, 0, -1))

    # Exclusivity locks

    @_store_errors
    async def acquire_lock(self, pool: str, vm_id: str, ttl_seconds: int) -> bool:
        """Set the lock if absent. Exactly one concurrent caller gets True."""
        acquired = await self.redis.set(
            PoolKeys(pool).lock(vm_id), "1", nx=True, ex=ttl_seconds
        )
        return bool(acquired)

    @_store_errors
    async def is_locked(self, pool: str, vm_id: str) -> bool:
        return bool(await self.redis.exists(PoolKeys(pool).lock(vm_id)))

    @_store_errors
    async def release_lock(self, pool: str, vm_id: str) -> None:
        await self.redis.delete(PoolKeys(pool).lock(vm_id))

    # Metadata cache

    @_store_errors
    async def get_cached(self, pool: str, vm_id: str) -> Optional[VMInstance]:
        """Read a cached descriptor. Missing or unparseable entries give None."""
        raw = await self.redis.get(PoolKeys(pool).cache(vm_id))
        vm = VMInstance.from_cache(raw)
        if raw and vm is None:
            logger.warning("Ignoring invalid cache entry", pool=pool, vm_id=vm_id)
        return vm

    @_store_errors
    async def cache_vm(self, pool: str, vm: VMInstance) -> None:
        await self.redis.set(PoolKeys(pool).cache(vm.id), vm.to_cache())

    @_store_errors
    async def evict_cached(self, pool: str, vm_id: str) -> None:
        await self.redis.delete(PoolKeys(pool).cache(vm_id))

    # Staging

    @_store_errors
    async def add_staging(self, pool: str, vm_id: str) -> None:
        keys = PoolKeys(pool)
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrem(keys.staging, 0, vm_id)
        pipe.rpush(keys.staging, vm_id)
        pipe.hdel(keys.staging_attempts, vm_id)
        await pipe.execute()

    @_store_errors
    async def list_staging(self, pool: str) -> List[str]:
        return list(await self.redis.lrange(PoolKeys(pool).staging, 0, -1))

    @_store_errors
    async def staging_length(self, pool: str) -> int:
        return int(await self.redis.llen(PoolKeys(pool).staging))

    @_store_errors
    async def remove_staging(self, pool: str, vm_id: str) -> bool:
        keys = PoolKeys(pool)
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrem(keys.staging, 0, vm_id)
        pipe.hdel(keys.staging_attempts, vm_id)
        removed, _ = await pipe.execute()
        return int(removed) > 0

    @_store_errors
    async def incr_staging_attempts(self, pool: str, vm_id: str) -> int:
        return int(await self.redis.hincrby(PoolKeys(pool).staging_attempts, vm_id, 1))

    @_store_errors
    async def promote(self, pool: str, vm: VMInstance) -> bool:
        """Move a staged instance to the ready queue in one transaction.

        Returns False if the id was no longer staged (another loop promoted or
        discarded it first), in which case nothing is pushed.
        """
        keys = PoolKeys(pool)
        removed = await self.redis.lrem(keys.staging, 0, vm.id)
        if not int(removed):
            return False
        pipe = self.redis.pipeline(transaction=True)
        pipe.hdel(keys.staging_attempts, vm.id)
        pipe.set(keys.cache(vm.id), vm.to_cache())
        self._queue_ready(pipe, keys, vm.id)
        await pipe.execute()
        return True

    # In-use tracking

    @_store_errors
    async def mark_in_use(self, pool: str, vm_id: str, assign_time_ms: int) -> None:
        await self.redis.hset(PoolKeys(pool).in_use, vm_id, str(assign_time_ms))

    @_store_errors
    async def clear_in_use(self, pool: str, vm_id: str) -> None:
        await self.redis.hdel(PoolKeys(pool).in_use, vm_id)

    @_store_errors
    async def list_in_use(self, pool: str) -> Dict[str, int]:
        raw = await self.redis.hgetall(PoolKeys(pool).in_use)
        in_use = {}
        for vm_id, value in (raw or {}).items():
            try:
                in_use[vm_id] = int(value)
            except (TypeError, ValueError):
                in_use[vm_id] = 0
        return in_use

    @_store_errors
    async def in_use_count(self, pool: str) -> int:
        return int(await self.redis.hlen(PoolKeys(pool).in_use))

    @_store_errors
    async def forget(self, pool: str, vm_id: str) -> None:
        """Drop every trace of an instance from the pool's bookkeeping."""
        keys = PoolKeys(pool)
        pipe = self.redis.pipeline(transaction=False)
        pipe.lrem(keys.ready, 0, vm_id)
        pipe.lrem(keys.staging, 0, vm_id)
        pipe.hdel(keys.staging_attempts, vm_id)
        pipe.hdel(keys.in_use, vm_id)
        pipe.delete(keys.cache(vm_id))
        await pipe.execute()

    # Scale-from-zero debounce

    @_store_errors
    async def try_scale_trigger(self, pool: str, ttl_seconds: int) -> bool:
        """Claim the provisioning trigger. One caller per window gets True."""
        claimed = await self.redis.set(
            PoolKeys(pool).scale_trigger, "1", nx=True, ex=ttl_seconds
        )
        return bool(claimed)

    # Metrics

    @_store_errors
    async def record_latency(self, elapsed_ms: int) -> None:
        """Record an assignment latency, keeping only the newest samples."""
        pipe = self.redis.pipeline(transaction=False)
        pipe.lpush(LATENCY_KEY, str(elapsed_ms))
        pipe.ltrim(LATENCY_KEY, 0, LATENCY_WINDOW - 1)
        await pipe.execute()

    @_store_errors
    async def recent_latencies(self) -> List[int]:
        return [int(v) for v in await self.redis.lrange(LATENCY_KEY, 0, -1)]

    @_store_errors
    async def set_waiting(self, count: int, ttl_seconds: int) -> None:
        await self.redis.setex(WAITING_KEY, ttl_seconds, str(count))

    @_store_errors
    async def get_waiting(self) -> int:
        value = await self.redis.get(WAITING_KEY)
        return int(value) if value else 0
