"""Assignment coordinator.

Hands out exactly one ready instance per request. Several service processes
and many concurrent requests may pop from the same ready queue; exclusivity
comes from the per-instance lock, which only one caller can set.
"""

import math
import time
from typing import TYPE_CHECKING, Optional

import structlog

from ..config import settings
from ..models.errors import LockContention, ProviderLookupError, Unavailable
from ..models.vm import VMInstance
from ..utils.tasks import spawn_background
from .store import PoolStore

if TYPE_CHECKING:
    from .providers.base import VMManager

logger = structlog.get_logger(__name__)

ASSIGN_WAIT_SECONDS = 90
LOCK_TTL_SECONDS = 300


def now_ms() -> int:
    return int(time.time() * 1000)


class AssignmentCoordinator:
    """Assigns ready instances from a pool to requesters."""

    def __init__(
        self,
        store: PoolStore,
        deadline_seconds: Optional[int] = None,
        scale_trigger_ttl: Optional[int] = None,
    ):
        """Initialize the coordinator.

        Args:
            store: Store over the requester's dedicated connection
            deadline_seconds: Overall budget across retries, 0 for none
            scale_trigger_ttl: Debounce window for scale-from-zero provisioning
        """
        self.store = store
        self.deadline_seconds = (
            settings.vm_assign_deadline_seconds
            if deadline_seconds is None
            else deadline_seconds
        )
        self.scale_trigger_ttl = (
            scale_trigger_ttl or settings.vm_scale_trigger_debounce_seconds
        )

    async def assign(self, manager: "VMManager") -> Optional[VMInstance]:
        """Assign one instance from the manager's pool.

        Returns None when nothing became available in time or on any failure.
        """
        try:
            return await self._assign(manager)
        except Unavailable as e:
            logger.info("No VM available", pool=manager.id, reason=e.message)
            return None
        except Exception as e:
            logger.warning(
                "Assignment failed",
                pool=manager.id,
                error=str(e),
                exception_type=type(e).__name__,
            )
            return None

    async def _assign(self, manager: "VMManager") -> VMInstance:
        started = time.monotonic()
        deadline = started + self.deadline_seconds if self.deadline_seconds else None
        selected: Optional[VMInstance] = None

        while selected is None:
            if manager.get_min_size() == 0:
                await self._trigger_scale_from_zero(manager)

            wait = ASSIGN_WAIT_SECONDS
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise Unavailable(manager.id, "Assignment deadline exceeded")
                wait = min(wait, max(1, math.ceil(remaining)))

            vm_id = await self.store.pop_ready(manager.id, timeout=wait)
            if vm_id is None:
                raise Unavailable(manager.id, f"Nothing ready within {wait}s")

            logger.info("Assignment candidate", pool=manager.id, vm_id=vm_id)
            try:
                selected = await self._claim(manager, vm_id)
            except LockContention:
                logger.debug("Lost lock race", pool=manager.id, vm_id=vm_id)
            except ProviderLookupError:
                logger.warning("Candidate VM no longer exists", pool=manager.id, vm_id=vm_id)
                await self.store.evict_cached(manager.id, vm_id)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        await self.store.record_latency(elapsed_ms)

        assign_time = now_ms()
        await self.store.mark_in_use(manager.id, selected.id, assign_time)
        logger.info("VM assigned", pool=manager.id, vm_id=selected.id, elapsed_ms=elapsed_ms)
        return selected.with_assign_time(assign_time)

    async def _claim(self, manager: "VMManager", vm_id: str) -> VMInstance:
        """Lock a popped id and resolve its descriptor.

        Raises:
            LockContention: Another requester holds the lock
            ProviderLookupError: The instance no longer exists
        """
        if not await self.store.acquire_lock(manager.id, vm_id, LOCK_TTL_SECONDS):
            raise LockContention(manager.id, vm_id)

        cached = await self.store.get_cached(manager.id, vm_id)
        if cached is not None:
            return cached
        return await manager.get_vm(vm_id)

    async def _trigger_scale_from_zero(self, manager: "VMManager") -> None:
        """Provision one instance when an on-demand pool has nothing ready.

        Concurrent requesters share a debounce key so only one of them
        provisions per window.
        """
        if await self.store.queue_length(manager.id):
            return
        if not await self.store.try_scale_trigger(manager.id, self.scale_trigger_ttl):
            return
        logger.info("Scaling from zero", pool=manager.id)
        spawn_background(manager.start_vm_wrapper(), name=f"scale-from-zero-{manager.id}")
