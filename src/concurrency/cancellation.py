# src/concurrency/cancellation.py - v1
"""Cooperative cancellation for queued and running analysis tasks.

A CancellationToken is handed to the scheduler on submit. Queued tasks
are dropped as soon as their token is cancelled; running executors call
raise_if_cancelled() at their suspension points. Callers sharing one
computation each wait with their own token (wait_cancellable); the shared
token fires only when all of them have given up (SharedCancellation).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskCancelledError(Exception):
    """A task was cancelled before it produced a result."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(reason or "task cancelled")


class CancellationToken:
    """One-shot cancellation flag with change callbacks."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token. Later calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                logger.warning("Cancellation callback failed: %s", exc)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run callback on cancel, immediately if already cancelled."""
        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TaskCancelledError(self._reason)


class SharedCancellation:
    """Token for one computation shared by several callers.

    The token is cancelled only once every caller still waiting has left
    by cancelling. A caller that waits without a token keeps it alive.
    """

    def __init__(self) -> None:
        self.token = CancellationToken()
        self._waiters = 0

    @property
    def waiters(self) -> int:
        return self._waiters

    def join(self) -> None:
        self._waiters += 1

    def leave(self, cancelled: bool = False, reason: str | None = None) -> None:
        self._waiters -= 1
        if self._waiters <= 0 and cancelled:
            self.token.cancel(reason or "every caller cancelled")


async def wait_cancellable(awaitable: Awaitable[T], token: CancellationToken | None) -> T:
    """Await awaitable, giving up with TaskCancelledError once token is cancelled.

    Only this caller stops waiting: pass a shielded future to keep the
    underlying work running for others.
    """
    if token is None:
        return await awaitable
    token.raise_if_cancelled()

    work = asyncio.ensure_future(awaitable)
    cancelled = asyncio.get_running_loop().create_future()

    def _on_cancel() -> None:
        if not cancelled.done():
            cancelled.set_result(None)

    token.add_callback(_on_cancel)
    try:
        await asyncio.wait({work, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        if work.done():
            return work.result()
        raise TaskCancelledError(token.reason)
    finally:
        token.remove_callback(_on_cancel)
        if not work.done():
            work.cancel()
