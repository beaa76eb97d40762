# src/capabilities/loader.py - v1
"""Load inference capabilities with bounded retries and a fixed backoff.

Every capability is loaded concurrently and independently; a round counts
as a success when at least one of them loaded. A round with nothing loaded
is retried after ``backoff_s`` until ``max_retries`` is spent, after which
the loader returns a state with every capability unloaded. It never raises:
callers degrade to fallback analysis instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from galleryai.capabilities.models import CapabilityState
from galleryai.events import emitter as events

if TYPE_CHECKING:
    from galleryai.capabilities.base_capability import BaseCapability
    from galleryai.capabilities.registry import CapabilityRegistry
    from galleryai.events.emitter import EventEmitter

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_S = 2.0


@dataclass(frozen=True)
class LoadSpec:
    """A named load routine."""

    name: str
    load: Callable[[], Awaitable[Any]]

    @classmethod
    def from_capability(cls, capability: BaseCapability) -> LoadSpec:
        return cls(name=capability.name, load=capability.load)


class RetryingLoader:
    """Owns the process-wide CapabilityState.

    Args:
        max_retries: Extra rounds allowed after a round where nothing loaded.
        backoff_s: Fixed wait between rounds.
        load_timeout_s: Per-capability timeout (None = unbounded).
        emitter: Receives progress and outcome events.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_s: float = DEFAULT_BACKOFF_S,
        load_timeout_s: float | None = None,
        emitter: EventEmitter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._backoff_s = backoff_s
        self._load_timeout_s = load_timeout_s
        self._emitter = emitter
        self._sleep = sleep
        self._state = CapabilityState(max_retries=max_retries)
        self._progress = 0.0

    @property
    def state(self) -> CapabilityState:
        """Read-only snapshot of the current state."""
        return self._state.model_copy(deep=True)

    @property
    def progress(self) -> float:
        return self._progress

    def reset(self) -> None:
        """Forget previous outcomes and the retry budget already spent."""
        self._state = CapabilityState(max_retries=self._state.max_retries)
        self._progress = 0.0

    async def load_all(self, specs: list[LoadSpec]) -> CapabilityState:
        """Load every spec, retrying whole rounds while nothing loads."""
        if not specs:
            logger.warning("No capabilities registered, analysis will use fallbacks")
            return self.state

        while True:
            self._state.loaded = await self._load_round(specs)

            if self._state.any_loaded:
                logger.info(
                    "Capabilities loaded: %s",
                    ", ".join(f"{n}={ok}" for n, ok in self._state.loaded.items()),
                )
                self._emit(events.MODELS_LOADED, {"loaded": dict(self._state.loaded)})
                return self.state

            self._emit(events.MODELS_ERROR, {"error": "all capabilities failed to load"})

            if self._state.retry_count >= self._state.max_retries:
                logger.warning(
                    "Capability loading failed after %d retries, continuing without models",
                    self._state.retry_count,
                )
                self._emit(
                    events.MODELS_LOAD_FAILED,
                    {"retry_count": self._state.retry_count},
                )
                return self.state

            self._state.retry_count += 1
            logger.warning(
                "No capability loaded, retrying (%d/%d) in %.1fs",
                self._state.retry_count, self._state.max_retries, self._backoff_s,
            )
            await self._sleep(self._backoff_s)

    async def load_registry(self, registry: CapabilityRegistry) -> CapabilityState:
        """Load every registered capability and record the outcome in the registry."""
        specs = [LoadSpec.from_capability(registry.get_or_raise(n)) for n in registry.names]
        state = await self.load_all(specs)
        registry.apply_state(state)
        return state

    async def _load_round(self, specs: list[LoadSpec]) -> dict[str, bool]:
        self._progress = 0.0
        step = 100.0 / len(specs)

        async def _load_one(spec: LoadSpec) -> bool:
            try:
                if self._load_timeout_s is None:
                    await spec.load()
                else:
                    await asyncio.wait_for(spec.load(), timeout=self._load_timeout_s)
                logger.info("Capability '%s' loaded", spec.name)
                ok = True
            except Exception as exc:
                logger.warning("Capability '%s' failed to load: %s", spec.name, exc)
                ok = False
            self._progress = min(100.0, self._progress + step)
            self._emit(
                events.MODEL_PROGRESS,
                {"progress": round(self._progress, 2), "capability": spec.name, "loaded": ok},
            )
            return ok

        results = await asyncio.gather(*(_load_one(spec) for spec in specs))
        return {spec.name: ok for spec, ok in zip(specs, results)}

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._emitter is not None:
            self._emitter.emit(event, payload)
