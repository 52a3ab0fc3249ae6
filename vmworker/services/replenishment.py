"""Per-pool replenishment loop.

Each pool runs one loop that keeps its ready queue near the effective target:

1. promote staged instances that pass their health check
2. provision when ready + staging is below target (within the pool limit)
3. terminate excess ready instances that have served enough of their
   billing hour
4. periodically reclaim abandoned and orphaned instances

Several service processes may run loops for the same pool; every mutation
that could race goes through an atomic Redis operation.
"""

import asyncio
import math
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

import structlog

from ..config import settings
from ..models.errors import ProviderLookupError, StoreUnavailable
from ..models.pool import HourRange, PoolConfig
from ..models.vm import VMInstance

if TYPE_CHECKING:
    from .providers.base import VMManager

logger = structlog.get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


def window_progress(window: Optional[HourRange], now: datetime) -> Optional[float]:
    """Elapsed fraction of a daily UTC hour window, or None outside it.

    Windows whose end hour is before the start hour wrap past midnight.
    """
    if window is None:
        return None
    start, end = window
    length = ((end - start) % 24) * 60
    minute_of_day = now.hour * 60 + now.minute + now.second / 60
    elapsed = (minute_of_day - start * 60) % MINUTES_PER_DAY
    if elapsed >= length:
        return None
    return elapsed / length


def effective_target(config: PoolConfig, now: Optional[datetime] = None) -> int:
    """Target number of ready instances for a pool at a given time."""
    now = now or datetime.now(UTC)
    full = config.min_size + config.min_buffer

    down = window_progress(config.ramp_down_hours, now)
    up = window_progress(config.ramp_up_hours, now)
    if down is not None:
        target = math.floor(full * (1 - down))
    elif up is not None:
        target = max(config.min_size, math.ceil(full * up))
    else:
        target = full

    if config.limit_size > 0:
        target = min(target, config.limit_size)
    return max(target, 0)


def eligible_for_termination(
    vm: VMInstance, min_uptime_minutes: int, now: Optional[datetime] = None
) -> bool:
    """Whether an instance has used enough of its current billing hour.

    Instances of unknown age are kept.
    """
    uptime = vm.uptime_minutes(now or datetime.now(UTC))
    if uptime is None or uptime < min_uptime_minutes:
        return False
    return (uptime % 60) >= min_uptime_minutes


class ReplenishmentLoop:
    """Background maintenance for one pool."""

    def __init__(
        self,
        manager: "VMManager",
        tick_seconds: Optional[float] = None,
        cleanup_interval_seconds: Optional[float] = None,
    ):
        self.manager = manager
        self.store = manager.store
        self.config = manager.config
        self.pool = manager.id
        self.tick_seconds = tick_seconds or settings.vm_pool_tick_seconds
        self.cleanup_interval_seconds = (
            cleanup_interval_seconds or settings.vm_cleanup_interval_seconds
        )
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_cleanup: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"replenish-{self.pool}")
        logger.info(
            "Replenishment loop started",
            pool=self.pool,
            min_size=self.config.min_size,
            min_buffer=self.config.min_buffer,
            limit=self.config.limit_size,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Replenishment loop stopped", pool=self.pool)

    async def _run(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Replenishment tick failed", pool=self.pool, error=str(e))
            await asyncio.sleep(self.tick_seconds)

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Run one maintenance pass. Step failures are logged, not raised."""
        now = now or datetime.now(UTC)
        steps = [
            ("check_staging", self.check_staging),
            ("resize_up", self.resize_up),
            ("resize_down", self.resize_down),
        ]
        if (
            self._last_cleanup is None
            or time.monotonic() - self._last_cleanup >= self.cleanup_interval_seconds
        ):
            self._last_cleanup = time.monotonic()
            steps.append(("sweep_abandoned", self.sweep_abandoned))

        for name, step in steps:
            try:
                await step(now)
            except StoreUnavailable as e:
                logger.warning(
                    "Store unavailable, skipping step", pool=self.pool, step=name, error=e.message
                )
            except Exception as e:
                logger.error(
                    "Replenishment step failed",
                    pool=self.pool,
                    step=name,
                    error=str(e),
                    exception_type=type(e).__name__,
                )

    # Staging

    async def check_staging(self, now: Optional[datetime] = None) -> None:
        staged = await self.store.list_staging(self.pool)
        if not staged:
            return
        results = await asyncio.gather(
            *(self._check_staged(vm_id) for vm_id in staged), return_exceptions=True
        )
        for vm_id, result in zip(staged, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Staging check failed",
                    pool=self.pool,
                    vm_id=vm_id,
                    error=str(result),
                    exception_type=type(result).__name__,
                )

    async def _check_staged(self, vm_id: str) -> None:
        try:
            vm = await self.manager.get_vm(vm_id)
            ready = await self.manager.is_vm_ready(vm)
        except ProviderLookupError:
            logger.info("Staged VM no longer exists", pool=self.pool, vm_id=vm_id)
            await self.store.remove_staging(self.pool, vm_id)
            return
        except Exception as e:
            logger.warning(
                "Could not check staged VM",
                pool=self.pool,
                vm_id=vm_id,
                error=str(e),
                exception_type=type(e).__name__,
            )
            ready = False

        if ready:
            if await self.store.promote(self.pool, vm):
                logger.info("VM ready", pool=self.pool, vm_id=vm_id)
            return

        await self._count_failed_check(vm_id)

    async def _count_failed_check(self, vm_id: str) -> None:
        """Terminate a staged VM once it has failed too many checks."""
        attempts = await self.store.incr_staging_attempts(self.pool, vm_id)
        if attempts >= settings.vm_staging_max_attempts:
            logger.warning(
                "VM never became ready, terminating",
                pool=self.pool,
                vm_id=vm_id,
                attempts=attempts,
            )
            if await self.store.remove_staging(self.pool, vm_id):
                await self.manager.terminate_vm_wrapper(vm_id)

    # Sizing

    async def resize_up(self, now: Optional[datetime] = None) -> int:
        """Provision toward the target. Returns the number launched."""
        target = effective_target(self.config, now)
        ready = await self.store.queue_length(self.pool)
        staging = await self.store.staging_length(self.pool)
        needed = target - (ready + staging)
        if needed <= 0:
            return 0

        limit = self.config.limit_size
        if limit > 0:
            total = len(await self.manager.list_vms())
            needed = min(needed, limit - total)
            if needed <= 0:
                logger.debug("Pool at limit", pool=self.pool, total=total, limit=limit)
                return 0

        logger.info(
            "Scaling up",
            pool=self.pool,
            target=target,
            ready=ready,
            staging=staging,
            launching=needed,
        )
        results = await asyncio.gather(
            *(self.manager.start_vm_wrapper() for _ in range(needed))
        )
        return sum(1 for vm_id in results if vm_id)

    async def resize_down(self, now: Optional[datetime] = None) -> int:
        """Terminate excess ready instances. Returns the number terminated."""
        now = now or datetime.now(UTC)
        target = effective_target(self.config, now)
        ready_ids = await self.store.list_ready(self.pool)
        excess = len(ready_ids) - target
        if excess <= 0:
            return 0

        known = {vm.id: vm for vm in await self.manager.list_vms()}
        candidates = [
            known[vm_id]
            for vm_id in ready_ids
            if vm_id in known
            and eligible_for_termination(known[vm_id], self.config.min_uptime_minutes, now)
        ]
        candidates.sort(key=lambda vm: vm.created_at or now)

        terminated = 0
        for vm in candidates[:excess]:
            # Only the caller whose LREM removed the id owns the termination
            if not await self.store.remove_ready(self.pool, vm.id):
                continue
            logger.info(
                "Scaling down",
                pool=self.pool,
                vm_id=vm.id,
                target=target,
                ready=len(ready_ids) - terminated,
            )
            await self.manager.terminate_vm_wrapper(vm.id)
            terminated += 1
        return terminated

    # Cleanup

    async def sweep_abandoned(self, now: Optional[datetime] = None) -> int:
        """Reclaim abandoned and orphaned instances. Returns the number reset."""
        now = now or datetime.now(UTC)
        now_ms = int(now.timestamp() * 1000)
        session_limit_ms = self.config.session_limit_seconds * 1000
        reclaimed = 0

        in_use = await self.store.list_in_use(self.pool)
        for vm_id, assigned_ms in in_use.items():
            if now_ms - assigned_ms <= session_limit_ms:
                continue
            if await self.store.is_locked(self.pool, vm_id):
                continue
            logger.info(
                "Reclaiming abandoned VM",
                pool=self.pool,
                vm_id=vm_id,
                held_seconds=(now_ms - assigned_ms) // 1000,
            )
            await self.manager.reset_vm(vm_id)
            reclaimed += 1

        vms = await self.manager.list_vms()
        provider_ids = {vm.id for vm in vms}
        ready = await self.store.list_ready(self.pool)
        staging = await self.store.list_staging(self.pool)

        for vm_id in ready:
            if vm_id not in provider_ids:
                logger.info("Dropping unknown VM from ready queue", pool=self.pool, vm_id=vm_id)
                await self.store.remove_ready(self.pool, vm_id)
                await self.store.evict_cached(self.pool, vm_id)
        for vm_id in staging:
            if vm_id not in provider_ids:
                logger.info("Dropping unknown VM from staging", pool=self.pool, vm_id=vm_id)
                await self.store.remove_staging(self.pool, vm_id)

        tracked = set(ready) | set(staging) | set(in_use)
        grace_minutes = settings.vm_orphan_grace_minutes
        for vm in vms:
            if vm.id in tracked:
                continue
            uptime = vm.uptime_minutes(now)
            if uptime is None or uptime < grace_minutes:
                continue
            if await self.store.is_locked(self.pool, vm.id):
                continue
            logger.info("Reclaiming orphaned VM", pool=self.pool, vm_id=vm.id)
            await self.manager.reset_vm(vm.id)
            reclaimed += 1
        return reclaimed
