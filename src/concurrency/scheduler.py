# src/concurrency/scheduler.py - v1
"""Priority admission queue drained by a bounded pool of concurrent workers.

Tasks are ordered by priority (HIGH > NORMAL > LOW), first-in first-out
within a tier. Draining takes up to ``worker_count`` tasks from the front,
runs them concurrently, waits for the whole batch, yields briefly to the
event loop and repeats until the queue is empty.

An executor failure never reaches the drain loop: it is handed to the
``on_error`` hook, whose return value settles the task (the analysis
pipeline turns it into a fallback result).
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel

from galleryai.concurrency.cancellation import CancellationToken, TaskCancelledError
from galleryai.logging.context import clear_context, set_task_context

logger = logging.getLogger(__name__)

P = TypeVar("P")
R = TypeVar("R")

DEFAULT_WORKER_COUNT = 2
DEFAULT_YIELD_INTERVAL_S = 0.1


class Priority(enum.IntEnum):
    LOW = 1
    NORMAL = 2
    HIGH = 3

    @classmethod
    def parse(cls, value: Priority | str | int | None) -> Priority:
        """Accept 'high'/'normal'/'low', ints or members; unknown means NORMAL."""
        if isinstance(value, Priority):
            return value
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.NORMAL)
        if isinstance(value, int) and value in cls._value2member_map_:
            return cls(value)
        return cls.NORMAL


class TaskState(str, enum.Enum):
    ENQUEUED = "enqueued"
    RUNNING = "running"
    SETTLED = "settled"
    CANCELLED = "cancelled"


@dataclass
class Task(Generic[P, R]):
    """A unit of work owned by the scheduler from submit to dequeue."""

    payload: P
    priority: Priority
    future: asyncio.Future[R]
    key: Any = None
    cancel_token: CancellationToken | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    enqueued_at: float = field(default_factory=time.monotonic)
    state: TaskState = TaskState.ENQUEUED


class SchedulerStats(BaseModel):
    """Snapshot of scheduler activity."""

    queue_length: int
    running: int
    draining: bool
    worker_count: int
    submitted: int
    completed: int
    failed: int
    cancelled: int


Executor = Callable[[Task[P, R]], Awaitable[R]]
ErrorHandler = Callable[[Task[P, R], Exception], R]


class PriorityTaskScheduler(Generic[P, R]):
    """Run submitted tasks in priority order, ``worker_count`` at a time.

    Args:
        executor: Coroutine function doing the work of one task.
        worker_count: Maximum tasks running concurrently (batch size).
        yield_interval_s: Pause between batches so the host loop is not starved.
        on_error: Turns an executor exception into a result. Without it the
            exception settles the task's future.
    """

    def __init__(
        self,
        executor: Executor,
        worker_count: int = DEFAULT_WORKER_COUNT,
        yield_interval_s: float = DEFAULT_YIELD_INTERVAL_S,
        on_error: ErrorHandler | None = None,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        self._executor = executor
        self._worker_count = worker_count
        self._yield_interval_s = yield_interval_s
        self._on_error = on_error
        self._queue: list[Task[P, R]] = []
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None
        self._closed = False
        self._running = 0
        self._submitted = 0
        self._completed = 0
        self._failed = 0
        self._cancelled = 0

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def draining(self) -> bool:
        return self._draining

    def submit(
        self,
        payload: P,
        priority: Priority | str = Priority.NORMAL,
        key: Any = None,
        cancel_token: CancellationToken | None = None,
    ) -> asyncio.Future[R]:
        """Queue a task and return the future it will settle."""
        if self._closed:
            raise RuntimeError("scheduler is closed")

        loop = asyncio.get_running_loop()
        task: Task[P, R] = Task(
            payload=payload,
            priority=Priority.parse(priority),
            future=loop.create_future(),
            key=key,
            cancel_token=cancel_token,
        )
        self._insert(task)
        self._submitted += 1
        logger.debug(
            "Queued task %s (key=%r, priority=%s, queue=%d)",
            task.id, key, task.priority.name, len(self._queue),
        )

        if cancel_token is not None:
            cancel_token.add_callback(lambda: self._discard(task))

        self._schedule_drain()
        return task.future

    def cancel_all(self, reason: str = "scheduler cancelled") -> int:
        """Cancel every queued task. Running tasks are left to finish."""
        queued, self._queue = self._queue, []
        for task in queued:
            self._settle_cancelled(task, reason)
        return len(queued)

    async def close(self) -> None:
        """Refuse new work, cancel the queue and wait for the running batch."""
        self._closed = True
        dropped = self.cancel_all("scheduler closed")
        if dropped:
            logger.info("Scheduler closed, %d queued tasks cancelled", dropped)
        if self._drain_task is not None:
            await asyncio.gather(self._drain_task, return_exceptions=True)

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            queue_length=len(self._queue),
            running=self._running,
            draining=self._draining,
            worker_count=self._worker_count,
            submitted=self._submitted,
            completed=self._completed,
            failed=self._failed,
            cancelled=self._cancelled,
        )

    # --- Queue ---

    def _insert(self, task: Task[P, R]) -> None:
        """Place after the last task of equal or higher priority."""
        index = len(self._queue)
        for i, queued in enumerate(self._queue):
            if task.priority > queued.priority:
                index = i
                break
        self._queue.insert(index, task)

    def _take_batch(self) -> list[Task[P, R]]:
        batch: list[Task[P, R]] = []
        while self._queue and len(batch) < self._worker_count:
            task = self._queue.pop(0)
            if task.cancel_token is not None and task.cancel_token.cancelled:
                self._settle_cancelled(task, task.cancel_token.reason)
                continue
            batch.append(task)
        return batch

    def _discard(self, task: Task[P, R]) -> None:
        if task.state is TaskState.ENQUEUED and task in self._queue:
            self._queue.remove(task)
            reason = task.cancel_token.reason if task.cancel_token else None
            self._settle_cancelled(task, reason)

    # --- Draining ---

    def _schedule_drain(self) -> None:
        if self._draining or not self._queue:
            return
        self._draining = True
        self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                batch = self._take_batch()
                if batch:
                    logger.debug(
                        "Draining batch of %d (%d still queued)", len(batch), len(self._queue)
                    )
                    await asyncio.gather(*(self._run_task(task) for task in batch))
                if self._queue:
                    await asyncio.sleep(self._yield_interval_s)
        finally:
            self._draining = False
            self._drain_task = None

    async def _run_task(self, task: Task[P, R]) -> None:
        task.state = TaskState.RUNNING
        self._running += 1
        set_task_context(task.id, None if task.key is None else str(task.key))
        try:
            if task.cancel_token is not None:
                task.cancel_token.raise_if_cancelled()
            result = await self._executor(task)
        except TaskCancelledError as exc:
            self._settle_cancelled(task, exc.reason)
        except Exception as exc:
            self._failed += 1
            logger.error("Task %s failed: %s", task.id, exc)
            self._settle_failure(task, exc)
        else:
            task.state = TaskState.SETTLED
            self._completed += 1
            if not task.future.done():
                task.future.set_result(result)
        finally:
            self._running -= 1
            clear_context()

    def _settle_failure(self, task: Task[P, R], exc: Exception) -> None:
        task.state = TaskState.SETTLED
        if task.future.done():
            return
        if self._on_error is None:
            task.future.set_exception(exc)
            return
        try:
            task.future.set_result(self._on_error(task, exc))
        except Exception as handler_exc:
            logger.error("Error handler failed for task %s: %s", task.id, handler_exc)
            task.future.set_exception(handler_exc)

    def _settle_cancelled(self, task: Task[P, R], reason: str | None) -> None:
        task.state = TaskState.CANCELLED
        self._cancelled += 1
        if not task.future.done():
            task.future.set_exception(TaskCancelledError(reason))
            # Nobody may be awaiting a cancelled task.
            task.future.add_done_callback(_consume_exception)


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()
