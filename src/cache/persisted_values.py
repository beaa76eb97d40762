# src/cache/persisted_values.py - v1
"""Generic persisted key/value tier: a BoundedCache in front of a durable store.

Keys are namespaced in the durable store as ``{namespace}:{key}`` so several
tiers can share one backend.
"""

from __future__ import annotations

import logging
from typing import Any

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.cache.bounded_cache import BoundedCache

logger = logging.getLogger(__name__)


class PersistedValueCache:
    """Read-through, write-through cache for JSON-serialisable values.

    Args:
        store: Durable backend.
        cache: In-memory tier. Its TTL also bounds durable records.
        namespace: Prefix for durable keys.
    """

    def __init__(
        self,
        store: BaseDurableStore,
        cache: BoundedCache[str, Any],
        namespace: str = "gallery",
    ) -> None:
        self._store = store
        self._cache = cache
        self._namespace = namespace

    async def get(self, key: str, default: Any = None) -> Any:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        durable_key = self._durable_key(key)
        try:
            record = await self._store.get(durable_key)
        except Exception as exc:
            logger.warning("Durable read failed for %s: %s", key, exc)
            return default

        if record is None:
            return default
        if record.is_expired(self._cache.ttl_s):
            logger.debug("Durable record %s expired", key)
            await self._delete_quietly(durable_key)
            return default

        self._cache.set(key, record.value)
        return record.value

    async def set(self, key: str, value: Any) -> bool:
        """Persist a value. Returns False (memory untouched) when the write fails."""
        try:
            await self._store.set(self._durable_key(key), value)
        except Exception as exc:
            logger.warning("Durable write failed for %s: %s", key, exc)
            return False
        self._cache.set(key, value)
        return True

    async def remove(self, key: str) -> None:
        self._cache.remove(key)
        await self._delete_quietly(self._durable_key(key))

    async def clear(self) -> None:
        """Drop every value of this namespace, in memory and durably."""
        self._cache.clear()
        for key in await self.keys():
            await self._delete_quietly(self._durable_key(key))

    async def keys(self) -> list[str]:
        prefix = f"{self._namespace}:"
        try:
            stored = await self._store.keys()
        except Exception as exc:
            logger.warning("Durable key listing failed: %s", exc)
            return self._cache.keys()
        return [k[len(prefix):] for k in stored if k.startswith(prefix)]

    def _durable_key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _delete_quietly(self, durable_key: str) -> None:
        try:
            await self._store.delete(durable_key)
        except Exception as exc:
            logger.warning("Durable delete failed for %s: %s", durable_key, exc)
