# src/cache/models.py - v1
"""Cache domain models: CacheEntry, CacheStats, DurableRecord."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[K, V]):
    """Single in-memory cache slot. Times come from the cache's clock."""

    key: K
    value: V
    created_at: float
    last_accessed_at: float


class CacheStats(BaseModel):
    """Counters exposed by a BoundedCache."""

    name: str
    size: int
    capacity: int
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class DurableRecord(BaseModel):
    """Envelope written to a durable store: the value plus its write time."""

    value: Any
    timestamp: float = Field(default_factory=time.time)

    def is_expired(self, ttl_s: float | None, now: float | None = None) -> bool:
        if ttl_s is None:
            return False
        now = time.time() if now is None else now
        return now - self.timestamp > ttl_s
