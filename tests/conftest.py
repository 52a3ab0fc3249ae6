"""Pytest configuration and shared fixtures."""

import asyncio
import os
from datetime import UTC, datetime, timedelta
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

# Set test environment before importing config
os.environ["REDIS_HOST"] = "localhost"
os.environ["REDIS_PORT"] = "6379"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_FORMAT"] = "console"

from vmworker.models.errors import ProviderLookupError
from vmworker.models.pool import PoolConfig
from vmworker.models.vm import VMInstance
from vmworker.services.providers.base import VMManager
from vmworker.services.store import PoolStore


class FakeRedisServer:
    """Keyspace shared by every FakeRedis client created from it."""

    def __init__(self):
        self.strings: Dict[str, tuple] = {}
        self.lists: Dict[str, List[str]] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}

    def client(self) -> "FakeRedis":
        return FakeRedis(self)

    def force_expire(self, key: str) -> None:
        self.strings.pop(key, None)


class FakePipeline:
    """Queues commands and runs them back to back on execute()."""

    def __init__(self, client: "FakeRedis"):
        self._client = client
        self._calls = []

    def __getattr__(self, name):
        method = getattr(self._client, name)

        def queue(*args, **kwargs):
            self._calls.append((method, args, kwargs))
            return self

        return queue

    async def execute(self):
        calls, self._calls = self._calls, []
        return [await method(*args, **kwargs) for method, args, kwargs in calls]

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self._calls = []


class FakeRedis:
    """Minimal in-memory stand-in for a decode_responses redis.asyncio client."""

    def __init__(self, server: Optional[FakeRedisServer] = None):
        self.server = server or FakeRedisServer()
        self.closed = False
        self.blpop_timeouts: List[int] = []

    def _check_open(self):
        if self.closed:
            raise RedisConnectionError("Connection closed by client")

    def _live_string(self, key: str) -> Optional[str]:
        entry = self.server.strings.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= asyncio.get_running_loop().time():
            del self.server.strings[key]
            return None
        return value

    async def ping(self):
        self._check_open()
        return True

    async def info(self):
        self._check_open()
        return {"redis_version": "7.2.0", "connected_clients": 1, "used_memory": 1048576}

    # Strings

    async def get(self, key):
        self._check_open()
        return self._live_string(key)

    async def set(self, key, value, nx=False, ex=None):
        self._check_open()
        if nx and self._live_string(key) is not None:
            return None
        expires_at = asyncio.get_running_loop().time() + ex if ex else None
        self.server.strings[key] = (str(value), expires_at)
        return True

    async def setex(self, key, seconds, value):
        return await self.set(key, value, ex=seconds)

    async def delete(self, *keys):
        self._check_open()
        removed = 0
        for key in keys:
            for space in (self.server.strings, self.server.lists, self.server.hashes):
                if space.pop(key, None) is not None:
                    removed += 1
        return removed

    async def exists(self, *keys):
        self._check_open()
        return sum(
            1
            for key in keys
            if self._live_string(key) is not None
            or key in self.server.lists
            or key in self.server.hashes
        )

    # Lists

    def _list(self, key) -> List[str]:
        return self.server.lists.setdefault(key, [])

    def _prune(self, key):
        if not self.server.lists.get(key):
            self.server.lists.pop(key, None)

    async def llen(self, key):
        self._check_open()
        return len(self.server.lists.get(key, []))

    async def lrange(self, key, start, end):
        self._check_open()
        items = self.server.lists.get(key, [])
        if end < 0:
            end = len(items) + end
        return list(items[start : end + 1])

    async def rpush(self, key, *values):
        self._check_open()
        items = self._list(key)
        items.extend(str(v) for v in values)
        return len(items)

    async def lpush(self, key, *values):
        self._check_open()
        items = self._list(key)
        for value in values:
            items.insert(0, str(value))
        return len(items)

    async def ltrim(self, key, start, end):
        self._check_open()
        items = self.server.lists.get(key, [])
        if end < 0:
            end = len(items) + end
        self.server.lists[key] = items[start : end + 1]
        self._prune(key)
        return True

    async def lrem(self, key, count, value):
        self._check_open()
        items = self.server.lists.get(key, [])
        kept, removed = [], 0
        for item in items:
            if item == value and (count == 0 or removed < count):
                removed += 1
            else:
                kept.append(item)
        self.server.lists[key] = kept
        self._prune(key)
        return removed

    async def blpop(self, keys, timeout=0):
        self.blpop_timeouts.append(timeout)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        while True:
            self._check_open()
            for key in keys:
                items = self.server.lists.get(key)
                if items:
                    value = items.pop(0)
                    self._prune(key)
                    return (key, value)
            if deadline is not None and loop.time() >= deadline:
                return None
            await asyncio.sleep(0.005)

    # Hashes

    async def hset(self, key, field, value):
        self._check_open()
        fields = self.server.hashes.setdefault(key, {})
        created = field not in fields
        fields[field] = str(value)
        return int(created)

    async def hdel(self, key, *fields):
        self._check_open()
        existing = self.server.hashes.get(key, {})
        removed = sum(1 for f in fields if existing.pop(f, None) is not None)
        if not existing:
            self.server.hashes.pop(key, None)
        return removed

    async def hgetall(self, key):
        self._check_open()
        return dict(self.server.hashes.get(key, {}))

    async def hlen(self, key):
        self._check_open()
        return len(self.server.hashes.get(key, {}))

    async def hincrby(self, key, field, amount=1):
        self._check_open()
        fields = self.server.hashes.setdefault(key, {})
        fields[field] = str(int(fields.get(field, 0)) + amount)
        return int(fields[field])

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def aclose(self):
        self.closed = True


class InMemoryManager(VMManager):
    """Provider adapter backed by a dict, for exercising pool logic."""

    provider = "Test"

    def __init__(self, config: PoolConfig, store: PoolStore, **kwargs):
        super().__init__(config, store, **kwargs)
        self.vms: Dict[str, VMInstance] = {}
        self.healthy: set = set()
        self.started: List[str] = []
        self.terminated: List[str] = []
        self.rebooted: List[str] = []
        self.fail_start = False
        self._counter = 0

    def add_vm(self, vm_id: str, age_minutes: float = 0.0, healthy: bool = True) -> VMInstance:
        vm = VMInstance(
            id=vm_id,
            provider=self.provider,
            region=self.region,
            large=self.large,
            host=f"10.0.0.{len(self.vms) + 1}",
            password=f"pw-{vm_id}",
            created_at=datetime.now(UTC) - timedelta(minutes=age_minutes),
        )
        self.vms[vm_id] = vm
        if healthy:
            self.healthy.add(vm_id)
        return vm

    async def _start_vm(self, name: str) -> str:
        if self.fail_start:
            raise RuntimeError("quota exceeded")
        self._counter += 1
        vm_id = f"vm-{self._counter}"
        self.add_vm(vm_id, healthy=False)
        self.started.append(vm_id)
        return vm_id

    async def _terminate_vm(self, vm_id: str) -> None:
        if vm_id not in self.vms:
            raise ProviderLookupError(self.provider, vm_id)
        del self.vms[vm_id]
        self.terminated.append(vm_id)

    async def _reboot_vm(self, vm_id: str) -> None:
        if vm_id not in self.vms:
            raise ProviderLookupError(self.provider, vm_id)
        self.rebooted.append(vm_id)

    async def _get_vm(self, vm_id: str) -> VMInstance:
        if vm_id not in self.vms:
            raise ProviderLookupError(self.provider, vm_id)
        return self.vms[vm_id]

    async def _list_vms(self) -> List[VMInstance]:
        return list(self.vms.values())

    async def _update_snapshot(self) -> Optional[str]:
        return "snapshot-1"

    async def is_vm_ready(self, vm: VMInstance) -> bool:
        return vm.id in self.healthy


@pytest.fixture
def mock_redis():
    """Mock Redis client for testing."""
    mock_client = AsyncMock(spec=redis.Redis)

    mock_client.get = AsyncMock(return_value=None)
    mock_client.set = AsyncMock(return_value=True)
    mock_client.setex = AsyncMock(return_value=True)
    mock_client.delete = AsyncMock(return_value=1)
    mock_client.exists = AsyncMock(return_value=0)
    mock_client.llen = AsyncMock(return_value=0)
    mock_client.lrange = AsyncMock(return_value=[])
    mock_client.lrem = AsyncMock(return_value=1)
    mock_client.blpop = AsyncMock(return_value=None)
    mock_client.hset = AsyncMock(return_value=1)
    mock_client.hgetall = AsyncMock(return_value={})
    mock_client.ping = AsyncMock(return_value=True)
    mock_client.aclose = AsyncMock()

    return mock_client


@pytest.fixture
def redis_server():
    return FakeRedisServer()


@pytest.fixture
def fake_redis(redis_server):
    return redis_server.client()


@pytest.fixture
def store(fake_redis):
    return PoolStore(fake_redis)


@pytest.fixture
def pool_config():
    return PoolConfig(
        provider="Test",
        large=False,
        region="US",
        limit_size=10,
        min_size=2,
        min_buffer=1,
        session_limit_seconds=3600,
    )


@pytest.fixture
def scale_from_zero_config():
    return PoolConfig(provider="Test", large=True, region="EU")


@pytest.fixture
def manager(pool_config, store):
    return InMemoryManager(pool_config, store, max_lifetime_minutes=0)


@pytest.fixture
def on_demand_manager(scale_from_zero_config, store):
    return InMemoryManager(scale_from_zero_config, store, max_lifetime_minutes=0)


@pytest.fixture
def make_manager(store):
    """Factory for in-memory adapters with custom policy."""

    def factory(config: PoolConfig, **kwargs) -> InMemoryManager:
        kwargs.setdefault("max_lifetime_minutes", 0)
        return InMemoryManager(config, store, **kwargs)

    return factory
