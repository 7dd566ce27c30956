"""In-process FIFO sync queue with linear retry backoff.

One drain task consumes the queue at a time, so at most one sync is in flight.
A failed task goes to the back of the queue and the worker sleeps
``retry_delay * retry_count`` before continuing; once ``retry_count`` exceeds
``max_retries`` the task is dropped (logged, and recorded in the dead-letter
log when one is configured).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, List, Optional

from .dead_letters import DeadLetterLog
from .sync_models import SyncTask
from .telemetry import (
    TASK_COMPLETED,
    TASK_DROPPED,
    TASK_ENQUEUED,
    TASK_RETRY_SCHEDULED,
    emit_event,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

TaskRunner = Callable[[str, Any], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[Any]]


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class SyncQueue:
    def __init__(
        self,
        runner: TaskRunner,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Sleeper = asyncio.sleep,
        dead_letters: Optional[DeadLetterLog] = None,
    ) -> None:
        self._runner = runner
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._dead_letters = dead_letters
        self._queue: Deque[SyncTask] = deque()
        self._state = QueueState.IDLE
        self._drain_task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def pending(self) -> int:
        return len(self._queue)

    def snapshot(self) -> List[SyncTask]:
        return [task.model_copy(deep=True) for task in self._queue]

    def retry_delay_for(self, retry_count: int) -> float:
        return self._retry_delay * retry_count

    def enqueue(self, user_id: str, payload: Any) -> str:
        """Queue a task and start draining if idle. Must be called from a running loop."""
        task = SyncTask(user_id=user_id, payload=payload)
        self._queue.append(task)
        logger.info("Enqueued sync id=%s user=%s", task.id, task.user_id)
        emit_event(TASK_ENQUEUED, task_id=task.id, user_id=task.user_id, pending=len(self._queue))
        self._start_if_idle()
        return task.id

    async def process_now(self, user_id: str, payload: Any) -> Any:
        """Run the task immediately, outside the queue, propagating any failure."""
        return await self._runner(user_id, payload)

    async def wait_idle(self) -> None:
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    async def shutdown(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._drain_task
        self._state = QueueState.IDLE

    def _start_if_idle(self) -> None:
        if self._state is QueueState.DRAINING:
            return
        loop = asyncio.get_running_loop()
        self._state = QueueState.DRAINING
        self._drain_task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        logger.info("Sync worker started")
        try:
            while self._queue:
                task = self._queue.popleft()
                await self._run(task)
        finally:
            self._state = QueueState.IDLE
            logger.info("Sync worker stopped")

    async def _run(self, task: SyncTask) -> None:
        logger.info("Processing sync task id=%s user=%s", task.id, task.user_id)
        try:
            await self._runner(task.user_id, task.payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("Sync task failed id=%s: %s", task.id, exc)
            await self._handle_failure(task, exc)
            return
        logger.info("Processed sync task id=%s", task.id)
        emit_event(TASK_COMPLETED, task_id=task.id, user_id=task.user_id, retries=task.retry_count)

    async def _handle_failure(self, task: SyncTask, exc: Exception) -> None:
        task.retry_count += 1
        if task.retry_count <= self._max_retries:
            delay = self.retry_delay_for(task.retry_count)
            self._queue.append(task)
            logger.info("Re-enqueueing task id=%s retries=%d delay=%.1fs", task.id, task.retry_count, delay)
            emit_event(
                TASK_RETRY_SCHEDULED,
                task_id=task.id,
                user_id=task.user_id,
                retries=task.retry_count,
                delay_seconds=delay,
            )
            await self._sleep(delay)
            return

        logger.error("Dropping task after retries id=%s user=%s", task.id, task.user_id)
        emit_event(TASK_DROPPED, task_id=task.id, user_id=task.user_id, retries=task.retry_count, error=str(exc))
        if self._dead_letters is not None:
            self._dead_letters.record(task, exc)


__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_RETRY_DELAY_SECONDS",
    "QueueState",
    "SyncQueue",
    "TaskRunner",
]
