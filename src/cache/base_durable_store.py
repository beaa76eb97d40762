# src/cache/base_durable_store.py - v1
"""Abstract second-tier (durable) key/value store.

Values must be JSON-serialisable; each is persisted wrapped in a
DurableRecord carrying its write time.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from galleryai.cache.models import DurableRecord

logger = logging.getLogger(__name__)


class BaseDurableStore(ABC):
    """Unified interface for durable cache backends."""

    @abstractmethod
    async def get(self, key: str) -> DurableRecord | None:
        """Retrieve a record by key."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a value (upsert), stamping the current time."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a record."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """List every stored key."""

    async def clear(self) -> None:
        """Remove every record."""
        for key in await self.keys():
            await self.delete(key)

    async def cleanup(self, ttl_s: float) -> int:
        """Delete records older than ttl_s. Returns the number removed."""
        now = time.time()
        removed = 0
        for key in await self.keys():
            record = await self.get(key)
            if record is None or record.is_expired(ttl_s, now):
                await self.delete(key)
                removed += 1
        if removed:
            logger.info("Durable cache cleanup removed %d expired records", removed)
        return removed

    def close(self) -> None:
        """Release backend resources. No-op by default."""
