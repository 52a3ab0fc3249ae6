"""Unit tests for tracked background tasks."""

import asyncio

import pytest

from vmworker.utils.tasks import (
    cancel_background_tasks,
    pending_background_tasks,
    spawn_background,
)


class TestSpawnBackground:
    """Tests for spawn_background."""

    @pytest.mark.asyncio
    async def test_task_runs_and_is_released(self):
        done = asyncio.Event()

        async def job():
            done.set()

        task = spawn_background(job(), name="job")
        await task

        assert done.is_set()
        assert task.get_name() == "job"
        assert task not in asyncio.all_tasks()

    @pytest.mark.asyncio
    async def test_failure_does_not_propagate(self):
        async def job():
            raise RuntimeError("boom")

        task = spawn_background(job())
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert isinstance(task.exception(), RuntimeError)

    @pytest.mark.asyncio
    async def test_cancel_background_tasks(self):
        started = pending_background_tasks()

        async def forever():
            await asyncio.sleep(3600)

        tasks = [spawn_background(forever()) for _ in range(3)]
        assert pending_background_tasks() == started + 3

        await cancel_background_tasks()
        await asyncio.sleep(0)

        assert all(task.cancelled() for task in tasks)
        assert pending_background_tasks() <= started
