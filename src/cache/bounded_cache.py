# src/cache/bounded_cache.py - v1
"""Fixed-capacity, TTL-aware key/value cache with least-recently-used eviction.

One instance per logical cache (loaded images, thumbnails, analysis results,
generic values). Entries are dropped on overflow (oldest last access first,
insertion order breaking ties), lazily on lookup once their TTL has elapsed,
and on explicit remove/clear. Every removal path runs the ``on_evict`` hook,
which is where caches holding external handles release them.

All operations take an internal re-entrant lock so the cache stays correct
when shared between threads.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Iterator, TypeVar

from galleryai.cache.models import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

EvictHook = Callable[[K, V], None]


class BoundedCache(Generic[K, V]):
    """LRU cache bounded by entry count, with optional time-to-live.

    Args:
        capacity: Maximum number of entries (>= 1).
        ttl_s: Lifetime of an entry from its creation, in seconds.
            None disables expiry.
        on_evict: Called with (key, value) whenever an entry leaves the
            cache, whatever the reason. Errors are logged and swallowed.
        copy_on_write: Deep-copy values on set, so later mutation of the
            caller's object cannot corrupt the cached copy.
        clock: Monotonic time source, injectable for tests.
        name: Label used in log messages and stats.
    """

    def __init__(
        self,
        capacity: int,
        ttl_s: float | None = None,
        on_evict: EvictHook | None = None,
        copy_on_write: bool = False,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl_s is not None and ttl_s <= 0:
            raise ValueError("ttl_s must be > 0 or None")
        self._capacity = capacity
        self._ttl_s = ttl_s
        self._on_evict = on_evict
        self._copy_on_write = copy_on_write
        self._clock = clock
        self._name = name
        # Ordered by last access: the first entry is always the LRU victim.
        self._entries: OrderedDict[K, CacheEntry[K, V]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_s(self) -> float | None:
        return self._ttl_s

    @property
    def name(self) -> str:
        return self._name

    def get(self, key: K) -> V | None:
        """Return the cached value, or None if absent or expired.

        A hit refreshes the entry's last access time. An expired entry is
        removed (and released) as a side effect.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if self._is_expired(entry, now):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                logger.debug("%s: entry %r expired", self._name, key)
                self._release(entry)
                return None

            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: K, value: V) -> None:
        """Insert or overwrite an entry, evicting the LRU entry when full."""
        if self._copy_on_write:
            value = copy.deepcopy(value)

        with self._lock:
            now = self._clock()
            existing = self._entries.get(key)
            if existing is not None:
                old_value = existing.value
                existing.value = value
                existing.created_at = now
                existing.last_accessed_at = now
                self._entries.move_to_end(key)
                if old_value is not value:
                    self._release(CacheEntry(key, old_value, now, now))
                return

            if len(self._entries) >= self._capacity:
                victim_key, victim = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(
                    "%s: evicted %r (capacity %d reached)",
                    self._name, victim_key, self._capacity,
                )
                self._release(victim)

            self._entries[key] = CacheEntry(
                key=key, value=value, created_at=now, last_accessed_at=now
            )

    def remove(self, key: K) -> bool:
        """Remove an entry. Returns True if it was present."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._release(entry)
            return True

    def clear(self) -> None:
        """Remove every entry, releasing each one."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            for entry in entries:
                self._release(entry)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        if self._ttl_s is None:
            return 0
        with self._lock:
            now = self._clock()
            expired = [
                key for key, entry in self._entries.items()
                if self._is_expired(entry, now)
            ]
            for key in expired:
                entry = self._entries.pop(key)
                self._expirations += 1
                self._release(entry)
            return len(expired)

    def peek_entry(self, key: K) -> CacheEntry[K, V] | None:
        """Return a copy of the raw entry without touching access time."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return CacheEntry(
                entry.key, entry.value, entry.created_at, entry.last_accessed_at
            )

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def values(self) -> list[V]:
        with self._lock:
            return [entry.value for entry in self._entries.values()]

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self._name,
                size=len(self._entries),
                capacity=self._capacity,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        # Membership does not refresh recency nor expire entries.
        with self._lock:
            return key in self._entries

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    # --- Internals ---

    def _is_expired(self, entry: CacheEntry[K, V], now: float) -> bool:
        return self._ttl_s is not None and now - entry.created_at >= self._ttl_s

    def _release(self, entry: CacheEntry[K, V]) -> None:
        if self._on_evict is None:
            return
        try:
            self._on_evict(entry.key, entry.value)
        except Exception as exc:
            logger.warning(
                "%s: release hook failed for %r: %s", self._name, entry.key, exc
            )
