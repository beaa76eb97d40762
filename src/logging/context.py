# src/logging/context.py - v1
"""Contextual logging support: attach resource key, task id and capability to records.

Values live in contextvars, so each asyncio task started by the scheduler
carries its own copy.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_resource_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "resource_key", default=None
)
_task_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "task_id", default=None
)
_capability: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "capability", default=None
)


@dataclass
class LogContext:
    """Snapshot of current logging context."""

    resource_key: str | None = None
    task_id: str | None = None
    capability: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        resource_key=_resource_key.get(),
        task_id=_task_id.get(),
        capability=_capability.get(),
    )


def set_task_context(task_id: str, resource_key: str | None = None) -> None:
    """Set task-level context (called by the worker running a task)."""
    _task_id.set(task_id)
    _resource_key.set(resource_key)


def set_capability_context(capability: str | None) -> None:
    """Set capability-level context (called around each inference call)."""
    _capability.set(capability)


def clear_context() -> None:
    """Reset all context variables."""
    _resource_key.set(None)
    _task_id.set(None)
    _capability.set(None)
