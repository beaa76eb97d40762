# src/resources/image_cache.py - v1
"""Loaded-image and thumbnail caches whose eviction releases the held handle."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import BaseModel

from galleryai.cache.bounded_cache import BoundedCache
from galleryai.resources.models import LoadedImage, Thumbnail

logger = logging.getLogger(__name__)

# Rough per-thumbnail footprint used for memory estimates
THUMBNAIL_SIZE_ESTIMATE = 10_000


class ImageCacheStats(BaseModel):
    cache_size: int
    thumbnail_cache_size: int
    max_cache_size: int
    max_thumbnail_cache_size: int
    total_memory_usage: int


def release_handle(key: Any, value: Any) -> None:
    """Eviction hook: close whatever handle the cached value holds."""
    close = getattr(value, "close", None)
    if callable(close):
        close()
        logger.debug("Released handle for %r", key)


def calculate_thumbnail_size(width: int, height: int, max_size: int) -> tuple[int, int]:
    """Clamp the long edge to max_size, keeping the aspect ratio."""
    if width <= 0 or height <= 0:
        raise ValueError("image dimensions must be positive")
    aspect_ratio = width / height
    if width > height:
        new_width = min(width, max_size)
        new_height = new_width / aspect_ratio
    else:
        new_height = min(height, max_size)
        new_width = new_height * aspect_ratio
    return max(1, round(new_width)), max(1, round(new_height))


class ImageCacheManager:
    """Two bounded caches: decoded images and encoded thumbnails."""

    def __init__(
        self,
        max_cache_size: int = 100,
        max_thumbnail_cache_size: int = 200,
        ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.images: BoundedCache[str, LoadedImage] = BoundedCache(
            max_cache_size, ttl_s=ttl_s, on_evict=release_handle, clock=clock, name="images"
        )
        self.thumbnails: BoundedCache[str, Thumbnail] = BoundedCache(
            max_thumbnail_cache_size,
            ttl_s=ttl_s,
            on_evict=release_handle,
            clock=clock,
            name="thumbnails",
        )

    def get(self, key: str) -> LoadedImage | None:
        return self.images.get(key)

    def set(self, key: str, image: LoadedImage) -> None:
        self.images.set(key, image)

    def get_thumbnail(self, key: str) -> Thumbnail | None:
        return self.thumbnails.get(key)

    def set_thumbnail(self, key: str, thumbnail: Thumbnail) -> None:
        self.thumbnails.set(key, thumbnail)

    def remove(self, key: str) -> None:
        self.images.remove(key)
        self.thumbnails.remove(key)

    def clear(self) -> None:
        self.images.clear()
        self.thumbnails.clear()

    def purge_expired(self) -> int:
        """Release every expired image and thumbnail. Returns the number removed."""
        removed = self.images.purge_expired() + self.thumbnails.purge_expired()
        if removed:
            logger.debug("Purged %d expired image cache entries", removed)
        return removed

    def stats(self) -> ImageCacheStats:
        memory = sum(image.byte_size for image in self.images.values())
        memory += len(self.thumbnails) * THUMBNAIL_SIZE_ESTIMATE
        return ImageCacheStats(
            cache_size=len(self.images),
            thumbnail_cache_size=len(self.thumbnails),
            max_cache_size=self.images.capacity,
            max_thumbnail_cache_size=self.thumbnails.capacity,
            total_memory_usage=memory,
        )
