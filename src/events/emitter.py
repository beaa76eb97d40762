# src/events/emitter.py - v1
"""Publish/subscribe notifications for progress and lifecycle events.

Purely observational: a failing listener is logged and skipped, it never
affects the emitter's caller.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

# Event names
MODEL_PROGRESS = "ai:model-progress"
MODELS_LOADED = "ai:models-loaded"
MODELS_ERROR = "ai:models-error"
MODELS_LOAD_FAILED = "ai:models-load-failed"
ENGINE_READY = "ai:engine-ready"
ENGINE_FALLBACK = "ai:engine-fallback"
IMAGE_ANALYZED = "image:analyzed"
IMAGE_LOADED = "image:loaded"
IMAGE_LOAD_FAILED = "image:load-failed"

_ids = itertools.count(1)


@dataclass
class _Subscription:
    id: int
    listener: Listener
    priority: int = 0
    once: bool = False


class EventEmitter:
    """Named-event dispatcher; higher-priority listeners run first."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}

    def on(
        self, event: str, listener: Listener, priority: int = 0, once: bool = False
    ) -> Callable[[], None]:
        """Subscribe to an event. Returns a function that unsubscribes."""
        if not callable(listener):
            raise TypeError("listener must be callable")
        subs = self._subscriptions.setdefault(event, [])
        sub = _Subscription(id=next(_ids), listener=listener, priority=priority, once=once)
        index = next((i for i, s in enumerate(subs) if s.priority < priority), len(subs))
        subs.insert(index, sub)
        return lambda: self._remove(event, sub.id)

    def once(self, event: str, listener: Listener, priority: int = 0) -> Callable[[], None]:
        return self.on(event, listener, priority=priority, once=True)

    def off(self, event: str, listener: Listener | None = None) -> None:
        """Remove one listener, or every listener of the event."""
        if listener is None:
            self._subscriptions.pop(event, None)
            return
        subs = self._subscriptions.get(event, [])
        self._subscriptions[event] = [s for s in subs if s.listener is not listener]

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """Dispatch to every listener. Returns how many were called."""
        subs = list(self._subscriptions.get(event, []))
        data = payload or {}
        for sub in subs:
            if sub.once:
                self._remove(event, sub.id)
            try:
                sub.listener(data)
            except Exception as exc:
                logger.warning("Listener for %s failed: %s", event, exc)
        return len(subs)

    def listener_count(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    def _remove(self, event: str, sub_id: int) -> None:
        subs = self._subscriptions.get(event)
        if subs:
            self._subscriptions[event] = [s for s in subs if s.id != sub_id]
