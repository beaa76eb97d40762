# src/concurrency/single_flight.py - v1
"""At most one in-flight computation per key; concurrent callers share it.

The producer runs in its own asyncio task, so a caller that gets cancelled
while waiting does not cancel the computation the other waiters depend on.
When the computation settles the entry is dropped and every waiter receives
the same value or the same exception; a failed key can be retried from
scratch by the next call.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class InFlightEntry(Generic[K, V]):
    """Book-keeping for one running computation."""

    key: K
    future: asyncio.Future[V]
    started_at: float
    waiters: int = 1
    task: asyncio.Task[None] | None = None


class SingleFlightRegistry(Generic[K, V]):
    """Deduplicate concurrent computations by key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._in_flight: dict[K, InFlightEntry[K, V]] = {}

    async def run(self, key: K, producer: Callable[[], Awaitable[V]]) -> V:
        """Return the outcome of producer(), invoking it only if no call for
        key is already in flight.
        """
        return await asyncio.shield(self.join(key, producer))

    def join(self, key: K, producer: Callable[[], Awaitable[V]]) -> asyncio.Future[V]:
        """Return the shared future for key, starting producer() if nothing
        is in flight. The entry exists as soon as this returns.

        The future is shared: await it through asyncio.shield, never cancel it.
        """
        entry = self._in_flight.get(key)
        if entry is not None:
            entry.waiters += 1
            logger.debug("Joining in-flight computation for %r (%d waiters)", key, entry.waiters)
            return entry.future

        loop = asyncio.get_running_loop()
        entry = InFlightEntry(key=key, future=loop.create_future(), started_at=self._clock())
        entry.future.add_done_callback(_consume_exception)
        self._in_flight[key] = entry
        entry.task = loop.create_task(self._drive(entry, producer))
        return entry.future

    def in_flight(self, key: K) -> bool:
        return key in self._in_flight

    def keys(self) -> list[K]:
        return list(self._in_flight.keys())

    def __len__(self) -> int:
        return len(self._in_flight)

    async def _drive(
        self, entry: InFlightEntry[K, V], producer: Callable[[], Awaitable[V]]
    ) -> None:
        try:
            value = await producer()
        except asyncio.CancelledError:
            self._forget(entry)
            if not entry.future.done():
                entry.future.cancel()
            raise
        except Exception as exc:
            self._forget(entry)
            logger.debug("Computation for %r failed: %s", entry.key, exc)
            if not entry.future.done():
                entry.future.set_exception(exc)
        else:
            self._forget(entry)
            if not entry.future.done():
                entry.future.set_result(value)

    def _forget(self, entry: InFlightEntry[K, V]) -> None:
        if self._in_flight.get(entry.key) is entry:
            del self._in_flight[entry.key]


def _consume_exception(future: asyncio.Future) -> None:
    # Every waiter may have gone away; mark the exception as retrieved.
    if not future.cancelled():
        future.exception()
