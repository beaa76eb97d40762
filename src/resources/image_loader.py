# src/resources/image_loader.py - v1
"""Decode images with Pillow, generate thumbnails and cache both.

Concurrent loads of the same resource share one decode. Decoding and
thumbnail encoding are blocking and run in worker threads.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Union

from PIL import Image

from galleryai.cache.keys import compute_cache_key
from galleryai.concurrency.single_flight import SingleFlightRegistry
from galleryai.events import emitter as events
from galleryai.resources.image_cache import ImageCacheManager, calculate_thumbnail_size
from galleryai.resources.models import ImageResource, LoadedImage, Thumbnail

if TYPE_CHECKING:
    from galleryai.events.emitter import EventEmitter

logger = logging.getLogger(__name__)

ImageSource = Union[ImageResource, Path, str, bytes]

DEFAULT_THUMBNAIL_SIZE = 240
DEFAULT_THUMBNAIL_QUALITY = 80
DEFAULT_LOAD_CONCURRENCY = 3


class ImageLoader:
    """Load images into an ImageCacheManager.

    Args:
        cache: Image and thumbnail caches.
        thumbnail_size: Long edge of generated thumbnails, in pixels.
        thumbnail_quality: JPEG quality of thumbnails (1-100).
        emitter: Receives image:loaded / image:load-failed events.
        load_concurrency: Default batch size of load_many.
    """

    def __init__(
        self,
        cache: ImageCacheManager,
        thumbnail_size: int = DEFAULT_THUMBNAIL_SIZE,
        thumbnail_quality: int = DEFAULT_THUMBNAIL_QUALITY,
        emitter: EventEmitter | None = None,
        load_concurrency: int = DEFAULT_LOAD_CONCURRENCY,
    ) -> None:
        if load_concurrency < 1:
            raise ValueError("load_concurrency must be >= 1")
        self._cache = cache
        self._load_concurrency = load_concurrency
        self._thumbnail_size = thumbnail_size
        self._thumbnail_quality = thumbnail_quality
        self._emitter = emitter
        self._loading: SingleFlightRegistry[str, LoadedImage] = SingleFlightRegistry()

    @property
    def cache(self) -> ImageCacheManager:
        return self._cache

    async def load(
        self,
        source: ImageSource,
        generate_thumbnail: bool = True,
        use_cache: bool = True,
    ) -> LoadedImage:
        """Load one image, reusing the cached or in-flight copy when present."""
        resource = to_resource(source)
        key = compute_cache_key(resource)

        if use_cache:
            cached = self._cache.get(key)
            if cached is not None and not cached.closed:
                return cached

        return await self._loading.run(
            key, lambda: self._load_internal(key, resource, generate_thumbnail, use_cache)
        )

    async def load_many(
        self,
        sources: list[ImageSource],
        concurrency: int | None = None,
        on_progress: Callable[[dict[str, Any]], None] | None = None,
    ) -> list[LoadedImage]:
        """Load in batches of ``concurrency``; failed sources are skipped.

        Expired cache entries are purged before the batch starts.
        """
        self._cache.purge_expired()
        concurrency = concurrency or self._load_concurrency
        results: list[LoadedImage] = []
        completed = 0
        total = len(sources)

        for start in range(0, total, concurrency):
            batch = sources[start : start + concurrency]
            outcomes = await asyncio.gather(
                *(self.load(source) for source in batch), return_exceptions=True
            )
            for source, outcome in zip(batch, outcomes):
                completed += 1
                if isinstance(outcome, BaseException):
                    logger.error("Failed to load %r: %s", _describe(source), outcome)
                else:
                    results.append(outcome)
                if on_progress is not None:
                    on_progress({
                        "completed": completed,
                        "total": total,
                        "percentage": completed / total * 100,
                    })

        return results

    def remove(self, key: str) -> None:
        """Drop an image and its thumbnail, releasing both."""
        self._cache.remove(key)

    def clear(self) -> None:
        self._cache.clear()

    async def _load_internal(
        self,
        key: str,
        resource: ImageResource,
        generate_thumbnail: bool,
        store: bool,
    ) -> LoadedImage:
        started = time.monotonic()
        try:
            image, byte_size = await asyncio.to_thread(_decode, resource)
        except Exception as exc:
            logger.error("Image load failed for %s: %s", key, exc)
            self._emit(events.IMAGE_LOAD_FAILED, {"cache_key": key, "error": str(exc)})
            raise

        width, height = image.size
        resource = resource.model_copy(
            update={"width": width, "height": height, "handle": image}
        )

        thumbnail = None
        if generate_thumbnail:
            try:
                thumbnail = await asyncio.to_thread(
                    make_thumbnail, image, key, self._thumbnail_size, self._thumbnail_quality
                )
                self._cache.set_thumbnail(key, thumbnail)
            except Exception as exc:
                logger.warning("Thumbnail generation failed for %s: %s", key, exc)

        loaded = LoadedImage(
            cache_key=key,
            resource=resource,
            image=image,
            byte_size=byte_size,
            thumbnail=thumbnail,
        )
        if store:
            self._cache.set(key, loaded)

        load_time_ms = int((time.monotonic() - started) * 1000)
        logger.debug("Loaded %s (%dx%d) in %dms", key, width, height, load_time_ms)
        self._emit(events.IMAGE_LOADED, {"cache_key": key, "load_time_ms": load_time_ms})
        return loaded

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._emitter is not None:
            self._emitter.emit(event, payload)


def to_resource(source: ImageSource) -> ImageResource:
    """Normalise a path, raw bytes or ImageResource into an ImageResource."""
    if isinstance(source, ImageResource):
        return source
    if isinstance(source, bytes):
        return ImageResource(data=source, size=len(source))
    if isinstance(source, str) and source.startswith(("http://", "https://")):
        raise ValueError(
            "remote images must be fetched by the caller; "
            "pass ImageResource(url=..., data=...)"
        )
    path = Path(source).expanduser()
    stat = path.stat()
    return ImageResource(
        name=path.name,
        size=stat.st_size,
        last_modified=stat.st_mtime,
        path=path,
    )


def make_thumbnail(image: Image.Image, key: str, max_size: int, quality: int) -> Thumbnail:
    """Encode a JPEG thumbnail whose long edge is at most max_size."""
    width, height = calculate_thumbnail_size(image.width, image.height, max_size)
    rgb = image.convert("RGB")
    try:
        resized = rgb.resize((width, height), Image.Resampling.LANCZOS)
    finally:
        rgb.close()
    buffer = io.BytesIO()
    try:
        resized.save(buffer, format="JPEG", quality=quality)
    finally:
        resized.close()
    return Thumbnail(cache_key=key, width=width, height=height, buffer=buffer)


def _decode(resource: ImageResource) -> tuple[Image.Image, int]:
    if resource.path is not None:
        image = Image.open(resource.path)
        image.load()
        size = resource.size if resource.size is not None else resource.path.stat().st_size
        return image, size
    if resource.data:
        image = Image.open(io.BytesIO(resource.data))
        image.load()
        return image, len(resource.data)
    raise ValueError("resource has neither a path nor data to decode")


def _describe(source: ImageSource) -> str:
    if isinstance(source, bytes):
        return f"<{len(source)} bytes>"
    if isinstance(source, ImageResource):
        return source.source_id or "<resource>"
    return str(source)
