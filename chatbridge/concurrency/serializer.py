"""Strict FIFO, one-at-a-time execution of request tasks."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import SerializerClosed

logger = logging.getLogger("chatbridge")

T = TypeVar("T")

QueueTask = Callable[[], Awaitable[Any]]


@dataclass
class _QueuedTask:
    """A submitted task waiting for, or holding, the single execution slot."""

    factory: QueueTask
    future: asyncio.Future
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    enqueued_at: float = field(default_factory=time.monotonic)
    running: Optional[asyncio.Task] = None


class RequestSerializer:
    """Runs submitted tasks one at a time in submission order.

    A task's failure is delivered only to its own caller. A caller that is
    cancelled while waiting is skipped; a caller cancelled while its task
    runs cancels that task, and the queue moves on.
    """

    def __init__(self) -> None:
        self._queue: deque[_QueuedTask] = deque()
        self._current: Optional[_QueuedTask] = None
        self._worker: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

        # Statistics
        self.total_submitted = 0
        self.total_completed = 0
        self.total_failed = 0
        self.total_cancelled = 0

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Queue ``task`` and return its result once it has run."""
        if self._closed:
            raise SerializerClosed("serializer is closed")

        loop = asyncio.get_running_loop()
        item = _QueuedTask(factory=task, future=loop.create_future())
        self._queue.append(item)
        self.total_submitted += 1
        self._idle.clear()
        logger.debug("Serializer: queued task %s (waiting=%d)", item.task_id, len(self._queue))
        self._ensure_worker()

        try:
            return await item.future
        except asyncio.CancelledError:
            running = item.running
            if running is not None and not running.done():
                logger.debug("Serializer: caller of task %s went away, cancelling it", item.task_id)
                running.cancel()
            raise

    def size(self) -> int:
        """Number of tasks waiting to run."""
        return sum(1 for item in self._queue if not item.future.done())

    def pending(self) -> int:
        """Number of tasks running (0 or 1)."""
        return 1 if self._current is not None else 0

    async def wait_for_idle(self) -> None:
        await self._idle.wait()

    async def close(self) -> None:
        """Reject queued tasks, cancel the running one and stop the worker."""
        self._closed = True
        while self._queue:
            item = self._queue.popleft()
            if not item.future.done():
                item.future.set_exception(SerializerClosed("serializer closed before the task ran"))
        current = self._current
        if current is not None and current.running is not None:
            current.running.cancel()
        worker = self._worker
        if worker is not None and not worker.done():
            await asyncio.wait({worker})

    def get_stats(self) -> dict[str, Any]:
        return {
            "waiting": self.size(),
            "running": self.pending(),
            "submitted": self.total_submitted,
            "completed": self.total_completed,
            "failed": self.total_failed,
            "cancelled": self.total_cancelled,
        }

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._queue:
            item = self._queue.popleft()
            if item.future.done():
                # Caller cancelled while waiting
                self.total_cancelled += 1
                continue
            await self._run(item)

        self._worker = None
        self._idle.set()

    async def _run(self, item: _QueuedTask) -> None:
        waited_ms = (time.monotonic() - item.enqueued_at) * 1000
        logger.debug("Serializer: running task %s after %.1fms", item.task_id, waited_ms)

        try:
            awaitable = item.factory()
        except Exception as exc:
            self.total_failed += 1
            item.future.set_exception(exc)
            return

        self._current = item
        item.running = asyncio.ensure_future(awaitable)
        try:
            await asyncio.wait({item.running})
        finally:
            self._current = None

        task = item.running
        if task.cancelled():
            self.total_cancelled += 1
            if not item.future.done():
                item.future.cancel()
            return

        exc = task.exception()
        if exc is not None:
            self.total_failed += 1
        else:
            self.total_completed += 1

        if item.future.done():
            return
        if exc is not None:
            item.future.set_exception(exc)
        else:
            item.future.set_result(task.result())
