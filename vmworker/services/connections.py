"""Per-requester Redis connections.

Each assignment request blocks on its own Redis connection, registered under
the requester's uid. Closing that connection aborts the blocked pop, which is
how a release from the same client cancels its pending assignment. Every
connection is closed when the request completes or after a fixed timeout,
whichever comes first.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

import redis.asyncio as redis
import structlog

from ..config import settings
from ..utils.tasks import spawn_background
from .store import PoolStore

logger = structlog.get_logger(__name__)


class ClientConnectionRegistry:
    """Tracks the open dedicated connection of each waiting requester."""

    def __init__(
        self,
        client_factory: Callable[[], redis.Redis],
        timeout_seconds: Optional[int] = None,
    ):
        self._client_factory = client_factory
        self._timeout_seconds = timeout_seconds or settings.client_connection_timeout_seconds
        self._connections: Dict[str, redis.Redis] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._reporter_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, uid: str) -> bool:
        return uid in self._connections

    async def open(self, uid: str) -> redis.Redis:
        """Open and register a dedicated connection for a requester."""
        if uid in self._connections:
            await self.disconnect(uid)

        client = self._client_factory()
        self._connections[uid] = client
        loop = asyncio.get_running_loop()
        self._timers[uid] = loop.call_later(
            self._timeout_seconds, self._expire, uid, client
        )
        return client

    def _expire(self, uid: str, client: redis.Redis) -> None:
        logger.debug("Client connection timed out", uid=uid)
        spawn_background(self.disconnect(uid, client), name=f"expire-{uid}")

    async def disconnect(self, uid: str, client: Optional[redis.Redis] = None) -> bool:
        """Close a requester's connection.

        When ``client`` is given, only that exact connection is closed, so a
        late timer cannot close a newer connection under the same uid.
        Returns True if a connection was closed.
        """
        current = self._connections.get(uid)
        if client is not None and current is not client:
            return False
        if current is None:
            return False

        del self._connections[uid]
        timer = self._timers.pop(uid, None)
        if timer is not None:
            timer.cancel()
        try:
            await current.aclose()
        except Exception as e:
            logger.warning("Error closing client connection", uid=uid, error=str(e))
        return True

    @asynccontextmanager
    async def connection(self, uid: str) -> AsyncIterator[redis.Redis]:
        """Scope a dedicated connection to one request."""
        client = await self.open(uid)
        try:
            yield client
        finally:
            await self.disconnect(uid, client)

    async def close_all(self) -> None:
        for uid in list(self._connections):
            await self.disconnect(uid)

    # Waiting gauge

    async def report_waiting(self, store: PoolStore) -> None:
        """Publish the number of requesters currently waiting."""
        await store.set_waiting(len(self), ttl_seconds=90)

    def start_reporter(self, store: PoolStore, interval_seconds: Optional[int] = None) -> None:
        if self._reporter_task is not None:
            return
        interval = interval_seconds or settings.waiting_gauge_interval_seconds
        self._reporter_task = asyncio.create_task(
            self._report_loop(store, interval), name="waiting-gauge"
        )

    async def _report_loop(self, store: PoolStore, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.report_waiting(store)
            except Exception as e:
                logger.warning("Failed to report waiting gauge", error=str(e))

    async def stop_reporter(self) -> None:
        if self._reporter_task is None:
            return
        self._reporter_task.cancel()
        try:
            await self._reporter_task
        except asyncio.CancelledError:
            pass
        self._reporter_task = None
