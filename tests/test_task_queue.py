"""
Tests for the background task queue
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.tasks.queue import SimpleTaskQueue, TaskStatus


@pytest.fixture
def queue():
    return SimpleTaskQueue(max_workers=1, max_queue_size=3, max_retries=3)


class TestSimpleTaskQueue:

    @pytest.mark.asyncio
    async def test_task_completes(self, queue):
        func = AsyncMock(return_value={"status": "completed"})

        task_id = await queue.add_task(func, "call-1", priority=3, name="analyze_call:call-1")
        await queue.start()
        try:
            await queue.join(timeout=5)
        finally:
            await queue.stop()

        task = await queue.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.result == {"status": "completed"}
        assert task.name == "analyze_call:call-1"
        func.assert_awaited_once_with("call-1")
        assert queue.get_stats()["completed_tasks"] == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, queue):
        """Test: an always-failing task runs max_retries + 1 times, then fails"""
        func = AsyncMock(side_effect=RuntimeError("provider down"))

        task_id = await queue.add_task(func, max_retries=2)
        await queue.start()
        try:
            await queue.join(timeout=5)
        finally:
            await queue.stop()

        task = await queue.get_task(task_id)
        assert func.await_count == 3
        assert task.status == TaskStatus.FAILED
        assert task.error == "provider down"
        assert queue.failed_tasks == 1
        assert queue.completed_tasks == 0

    @pytest.mark.asyncio
    async def test_succeeds_on_retry(self, queue):
        func = AsyncMock(side_effect=[RuntimeError("timeout"), "ok"])

        task_id = await queue.add_task(func)
        await queue.start()
        try:
            await queue.join(timeout=5)
        finally:
            await queue.stop()

        task = await queue.get_task(task_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.retry_count == 1
        assert task.priority == 6

    @pytest.mark.asyncio
    async def test_sync_callable(self, queue):
        task_id = await queue.add_task(lambda x: x * 2, 21)
        await queue.start()
        try:
            await queue.join(timeout=5)
        finally:
            await queue.stop()

        assert (await queue.get_task(task_id)).result == 42

    @pytest.mark.asyncio
    async def test_full_queue_rejects(self, queue):
        for _ in range(3):
            await queue.add_task(AsyncMock())

        with pytest.raises(RuntimeError):
            await queue.add_task(AsyncMock())
        assert queue.qsize() == 3

    @pytest.mark.asyncio
    async def test_cancel_pending(self, queue):
        func = AsyncMock()
        task_id = await queue.add_task(func)

        assert await queue.cancel_task(task_id) is True
        assert await queue._get_next_task() is None
        assert await queue.cancel_task("missing") is False
        func.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_priority_order(self, queue):
        low = await queue.add_task(AsyncMock(), priority=7)
        high = await queue.add_task(AsyncMock(), priority=1)
        normal = await queue.add_task(AsyncMock(), priority=5)

        order = [(await queue._get_next_task()).id for _ in range(3)]

        assert order == [high, normal, low]

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_tasks(self, queue):
        task_id = await queue.add_task(AsyncMock())
        await queue.cancel_task(task_id)

        assert await queue.cleanup_old_tasks(hours=24) == 0
        assert await queue.get_task(task_id) is not None

    @pytest.mark.asyncio
    async def test_cleanup_drops_expired_tasks(self, queue):
        finished = await queue.add_task(AsyncMock())
        pending = await queue.add_task(AsyncMock())
        await queue.cancel_task(finished)
        (await queue.get_task(finished)).completed_at = datetime.utcnow() - timedelta(hours=25)

        assert await queue.cleanup_old_tasks() == 1
        assert await queue.get_task(finished) is None
        assert await queue.get_task(pending) is not None

    @pytest.mark.asyncio
    async def test_running_queue_forgets_finished_tasks(self):
        """Test: a long-running queue does not keep every finished task"""
        queue = SimpleTaskQueue(max_workers=2, max_queue_size=100, retention_hours=0, cleanup_interval=0.05)
        for _ in range(50):
            await queue.add_task(AsyncMock(return_value="ok"))

        await queue.start()
        try:
            await queue.join(timeout=5)
            await asyncio.sleep(0.3)
        finally:
            await queue.stop()

        assert queue.completed_tasks == 50
        assert len(queue._tasks) == 0
