# src/cache/cache_factory.py - v1
"""Factory for durable store instantiation."""

from __future__ import annotations

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.config.settings import Settings


def create_durable_store(settings: Settings | None = None) -> BaseDurableStore | None:
    """Instantiate the configured durable cache backend.

    Args:
        settings: Application settings. None means no durable cache.

    Returns:
        Configured BaseDurableStore, or None when the backend is "none".
    """
    backend = "none" if settings is None else settings.durable_cache_backend

    if backend == "none":
        return None

    if backend == "memory":
        from galleryai.cache.memory_store import MemoryDurableStore
        return MemoryDurableStore()

    if backend == "json":
        from galleryai.cache.json_store import JsonDurableStore
        return JsonDurableStore(root=settings.durable_cache_root)

    if backend == "sqlite":
        from galleryai.cache.sqlite_store import SqliteDurableStore
        db_path = settings.durable_cache_root.expanduser() / "galleryai_cache.db"
        return SqliteDurableStore(db_path=db_path)

    if backend == "redis":
        from galleryai.cache.redis_store import RedisDurableStore
        if not settings.durable_cache_redis_url:
            raise ValueError(
                "DURABLE_CACHE_REDIS_URL must be set when DURABLE_CACHE_BACKEND=redis"
            )
        return RedisDurableStore(
            redis_url=settings.durable_cache_redis_url,
            ttl_s=settings.cache_ttl_s,
        )

    raise ValueError(f"Unsupported durable cache backend: {backend!r}")
