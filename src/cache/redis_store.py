# src/cache/redis_store.py - v1
"""Redis-based durable store (DURABLE_CACHE_BACKEND=redis).

Requires the 'redis' package: pip install galleryai[redis].
Suitable when several gallery workers share one result cache.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.cache.models import DurableRecord

logger = logging.getLogger(__name__)

_KEY_PREFIX = "galleryai:durable:"
_INDEX_KEY = "galleryai:durable:__index__"


class RedisDurableStore(BaseDurableStore):
    """Redis-backed store; a set indexes the keys for listing and cleanup."""

    def __init__(self, redis_url: str, ttl_s: float | None = None) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install galleryai[redis]"
            ) from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._ttl_s = ttl_s

    async def get(self, key: str) -> DurableRecord | None:
        data = self._client.get(f"{_KEY_PREFIX}{key}")
        if data is None:
            # Expired by Redis; drop it from the index too.
            self._client.srem(_INDEX_KEY, key)
            return None
        try:
            return DurableRecord(**json.loads(data))
        except (ValueError, TypeError) as e:
            logger.warning("Failed to deserialize durable entry %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any) -> None:
        record = DurableRecord(value=value)
        # Redis expires the value itself; get() and keys() prune the index.
        self._client.set(
            f"{_KEY_PREFIX}{key}",
            record.model_dump_json(),
            px=max(1, math.ceil(self._ttl_s * 1000)) if self._ttl_s else None,
        )
        self._client.sadd(_INDEX_KEY, key)

    async def delete(self, key: str) -> None:
        self._client.delete(f"{_KEY_PREFIX}{key}")
        self._client.srem(_INDEX_KEY, key)

    async def keys(self) -> list[str]:
        indexed = sorted(self._client.smembers(_INDEX_KEY))
        if not indexed:
            return []
        pipe = self._client.pipeline()
        for key in indexed:
            pipe.exists(f"{_KEY_PREFIX}{key}")
        present = pipe.execute()

        stale = [key for key, exists in zip(indexed, present) if not exists]
        if stale:
            logger.debug("Pruning %d expired keys from the durable index", len(stale))
            self._client.srem(_INDEX_KEY, *stale)
        return [key for key, exists in zip(indexed, present) if exists]

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
