"""
Simple AsyncIO task queue for background processing
Fire-and-forget work from request handlers, retried in-process
"""

import asyncio
import heapq
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass, field
from enum import Enum
import uuid

import structlog

from ..config import get_settings

logger = structlog.get_logger("inbox.tasks.queue")


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class Task:
    """Task representation"""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    func: Callable = None
    args: tuple = field(default_factory=tuple)
    kwargs: dict = field(default_factory=dict)
    priority: int = 5  # Lower number = higher priority
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3

    def __lt__(self, other):
        # For heapq ordering
        return (self.priority, self.created_at) < (other.priority, other.created_at)


class SimpleTaskQueue:
    """Async task queue with priorities, workers and bounded retries"""

    def __init__(
        self,
        max_workers: int = 2,
        max_queue_size: int = 100,
        max_retries: int = 3,
        retention_hours: float = 24,
        cleanup_interval: float = 3600.0
    ):
        self.max_workers = max_workers
        self.max_queue_size = max_queue_size
        self.max_retries = max_retries
        self.retention_hours = retention_hours
        self.cleanup_interval = cleanup_interval  # seconds

        self._queue = []  # Priority heap
        self._tasks: Dict[str, Task] = {}
        self._workers = []
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False
        self._queue_lock = asyncio.Lock()

        self.active_tasks = 0
        self.completed_tasks = 0
        self.failed_tasks = 0

    async def add_task(
        self,
        func: Callable,
        *args,
        priority: int = 5,
        max_retries: Optional[int] = None,
        name: str = "",
        **kwargs
    ) -> str:
        """Add task to queue; raises RuntimeError when the queue is full"""
        if len(self._queue) >= self.max_queue_size:
            raise RuntimeError("Task queue is full")

        task = Task(
            name=name or getattr(func, "__qualname__", ""),
            func=func,
            args=args,
            kwargs=kwargs,
            priority=priority,
            max_retries=self.max_retries if max_retries is None else max_retries
        )

        async with self._queue_lock:
            heapq.heappush(self._queue, task)
            self._tasks[task.id] = task

        logger.info("Task added to queue", task_id=task.id, task=task.name, priority=priority)
        return task.id

    async def get_task(self, task_id: str) -> Optional[Task]:
        """Get task by ID"""
        return self._tasks.get(task_id)

    async def cancel_task(self, task_id: str) -> bool:
        """Cancel pending task"""
        task = self._tasks.get(task_id)
        if not task or task.status != TaskStatus.PENDING:
            return False

        task.status = TaskStatus.CANCELLED
        task.completed_at = datetime.utcnow()
        logger.info("Task cancelled", task_id=task_id)
        return True

    async def _get_next_task(self) -> Optional[Task]:
        """Pop the next pending task, dropping cancelled ones"""
        async with self._queue_lock:
            while self._queue:
                task = heapq.heappop(self._queue)
                if task.status == TaskStatus.PENDING:
                    return task
        return None

    async def _execute_task(self, task: Task) -> None:
        """Execute single task"""
        task.status = TaskStatus.RUNNING
        task.started_at = datetime.utcnow()
        self.active_tasks += 1

        logger.info("Executing task", task_id=task.id, task=task.name, attempt=task.retry_count + 1)

        try:
            if asyncio.iscoroutinefunction(task.func):
                result = await task.func(*task.args, **task.kwargs)
            else:
                result = task.func(*task.args, **task.kwargs)

            task.result = result
            task.status = TaskStatus.COMPLETED
            task.completed_at = datetime.utcnow()
            self.completed_tasks += 1

            logger.info("Task completed", task_id=task.id, task=task.name)

        except Exception as e:
            task.error = str(e)
            task.retry_count += 1

            logger.error("Task failed", task_id=task.id, task=task.name, error=str(e))

            if task.retry_count <= task.max_retries:
                task.status = TaskStatus.PENDING
                # Re-add to queue with lower priority
                async with self._queue_lock:
                    task.priority += 1
                    heapq.heappush(self._queue, task)

                logger.info("Task queued for retry", task_id=task.id, retry=task.retry_count)
            else:
                task.status = TaskStatus.FAILED
                task.completed_at = datetime.utcnow()
                self.failed_tasks += 1
                logger.error(
                    "Task failed permanently",
                    task_id=task.id,
                    task=task.name,
                    attempts=task.retry_count,
                    error=task.error
                )

        finally:
            self.active_tasks -= 1

    async def _cleanup_loop(self):
        """Periodically forget finished tasks past the retention window"""
        while self._running:
            try:
                await asyncio.sleep(self.cleanup_interval)
                await self.cleanup_old_tasks()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Task cleanup failed", error=str(e))

    async def _worker(self, worker_id: int):
        """Worker coroutine"""
        logger.info("Worker started", worker_id=worker_id)

        try:
            while self._running:
                task = await self._get_next_task()

                if task:
                    await self._execute_task(task)
                else:
                    # No tasks available, wait a bit
                    await asyncio.sleep(0.05)

        except asyncio.CancelledError:
            logger.info("Worker cancelled", worker_id=worker_id)
        finally:
            logger.info("Worker stopped", worker_id=worker_id)

    async def start(self):
        """Start the task queue workers"""
        if self._running:
            return

        self._running = True

        for i in range(self.max_workers):
            worker = asyncio.create_task(self._worker(i))
            self._workers.append(worker)

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

        logger.info("Task queue started", workers=self.max_workers, retention_hours=self.retention_hours)

    async def stop(self, timeout: float = 10.0):
        """Stop the task queue gracefully"""
        if not self._running:
            return

        logger.info("Stopping task queue")
        self._running = False

        background = list(self._workers)
        if self._cleanup_task is not None:
            background.append(self._cleanup_task)
        for worker in background:
            worker.cancel()

        try:
            await asyncio.wait_for(
                asyncio.gather(*background, return_exceptions=True),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Task queue stop timeout, forcing shutdown")

        self._workers.clear()
        self._cleanup_task = None
        logger.info("Task queue stopped")

    async def join(self, timeout: float = 10.0, poll_interval: float = 0.02):
        """Wait until nothing is queued or running"""
        async def _drain():
            while self._queue or self.active_tasks:
                await asyncio.sleep(poll_interval)

        await asyncio.wait_for(_drain(), timeout=timeout)

    def qsize(self) -> int:
        """Get queue size"""
        return len(self._queue)

    def get_stats(self) -> Dict[str, Any]:
        """Get queue statistics"""
        return {
            "queue_size": len(self._queue),
            "active_tasks": self.active_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "running": self._running,
            "workers": len(self._workers),
        }

    async def cleanup_old_tasks(self, hours: Optional[float] = None) -> int:
        """Forget finished tasks older than the cutoff (default: retention_hours)"""
        if hours is None:
            hours = self.retention_hours
        cutoff_time = datetime.utcnow() - timedelta(hours=hours)

        to_remove = [
            task_id for task_id, task in self._tasks.items()
            if task.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)
            and task.completed_at and task.completed_at < cutoff_time
        ]
        for task_id in to_remove:
            del self._tasks[task_id]

        logger.info("Cleaned up old tasks", removed=len(to_remove))
        return len(to_remove)


_settings = get_settings()

# Global task queue instance
task_queue = SimpleTaskQueue(
    max_workers=_settings.max_workers,
    max_queue_size=_settings.max_queue_size,
    max_retries=_settings.task_max_retries,
    retention_hours=_settings.task_retention_hours,
    cleanup_interval=_settings.task_cleanup_interval_seconds
)


def get_task_queue() -> SimpleTaskQueue:
    """Dependency for FastAPI routes"""
    return task_queue
