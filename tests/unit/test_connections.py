"""Unit tests for the per-requester connection registry."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from vmworker.services.assignment import AssignmentCoordinator
from vmworker.services.connections import ClientConnectionRegistry
from vmworker.services.store import WAITING_KEY, PoolStore


@pytest.fixture
def connections(redis_server):
    return ClientConnectionRegistry(redis_server.client, timeout_seconds=90)


class TestOpenAndDisconnect:
    """Tests for opening and closing requester connections."""

    @pytest.mark.asyncio
    async def test_open_registers_connection(self, connections):
        client = await connections.open("user-1")

        assert "user-1" in connections
        assert len(connections) == 1
        assert not client.closed

    @pytest.mark.asyncio
    async def test_disconnect_closes_connection(self, connections):
        client = await connections.open("user-1")

        assert await connections.disconnect("user-1") is True
        assert client.closed
        assert "user-1" not in connections

    @pytest.mark.asyncio
    async def test_disconnect_unknown_uid(self, connections):
        assert await connections.disconnect("nobody") is False

    @pytest.mark.asyncio
    async def test_reopen_closes_previous(self, connections):
        first = await connections.open("user-1")
        second = await connections.open("user-1")

        assert first.closed
        assert not second.closed
        assert len(connections) == 1

    @pytest.mark.asyncio
    async def test_stale_client_does_not_close_newer(self, connections):
        first = await connections.open("user-1")
        await connections.disconnect("user-1")
        second = await connections.open("user-1")

        assert await connections.disconnect("user-1", first) is False
        assert not second.closed

    @pytest.mark.asyncio
    async def test_close_errors_are_logged(self, connections):
        client = await connections.open("user-1")
        client.aclose = AsyncMock(side_effect=RuntimeError("socket gone"))

        assert await connections.disconnect("user-1") is True

    @pytest.mark.asyncio
    async def test_close_all(self, connections):
        clients = [await connections.open(f"user-{i}") for i in range(3)]

        await connections.close_all()

        assert len(connections) == 0
        assert all(client.closed for client in clients)


class TestConnectionScope:
    """Tests for the connection() context manager."""

    @pytest.mark.asyncio
    async def test_closed_on_exit(self, connections):
        async with connections.connection("user-1") as client:
            assert "user-1" in connections

        assert client.closed
        assert "user-1" not in connections

    @pytest.mark.asyncio
    async def test_closed_on_error(self, connections):
        with pytest.raises(RuntimeError):
            async with connections.connection("user-1") as client:
                raise RuntimeError("boom")

        assert client.closed

    @pytest.mark.asyncio
    async def test_timeout_closes_connection(self, redis_server):
        connections = ClientConnectionRegistry(redis_server.client, timeout_seconds=0.01)

        client = await connections.open("user-1")
        await asyncio.sleep(0.05)

        assert client.closed
        assert "user-1" not in connections


class TestReleaseCancelsAssignment:
    """Closing a requester's connection aborts its pending wait."""

    @pytest.mark.asyncio
    async def test_disconnect_aborts_blocked_assign(self, connections, on_demand_manager):
        on_demand_manager.fail_start = True

        async def assign():
            async with connections.connection("user-1") as client:
                return await AssignmentCoordinator(PoolStore(client)).assign(on_demand_manager)

        task = asyncio.create_task(assign())
        await asyncio.sleep(0.02)
        assert "user-1" in connections

        await connections.disconnect("user-1")

        assert await asyncio.wait_for(task, timeout=1) is None


class TestWaitingGauge:
    """Tests for the waiting-requester gauge."""

    @pytest.mark.asyncio
    async def test_report_waiting(self, connections, fake_redis, store):
        await connections.open("user-1")
        await connections.open("user-2")

        await connections.report_waiting(store)

        assert await fake_redis.get(WAITING_KEY) == "2"

    @pytest.mark.asyncio
    async def test_reporter_runs_periodically(self, connections, store):
        await connections.open("user-1")

        connections.start_reporter(store, interval_seconds=0.01)
        await asyncio.sleep(0.05)
        await connections.stop_reporter()

        assert await store.get_waiting() == 1
        assert connections._reporter_task is None

    @pytest.mark.asyncio
    async def test_stop_without_start(self, connections):
        await connections.stop_reporter()
