# src/cache/memory_store.py - v1
"""In-process durable store (DURABLE_CACHE_BACKEND=memory).

Useful as a stand-in for the real backends in tests and single-process runs.
"""

from __future__ import annotations

import copy
from typing import Any

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.cache.models import DurableRecord


class MemoryDurableStore(BaseDurableStore):
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: dict[str, DurableRecord] = {}

    async def get(self, key: str) -> DurableRecord | None:
        record = self._data.get(key)
        return None if record is None else record.model_copy(deep=True)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = DurableRecord(value=copy.deepcopy(value))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data.keys())

    async def clear(self) -> None:
        self._data.clear()
