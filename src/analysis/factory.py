# src/analysis/factory.py - v1
"""Build the gallery's components from Settings.

Each logical cache gets its own BoundedCache instance, injected into the
component that owns it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from galleryai.analysis.pipeline import AnalysisPipeline
from galleryai.analysis.vocabulary import get_vocabulary
from galleryai.cache.bounded_cache import BoundedCache
from galleryai.cache.cache_factory import create_durable_store
from galleryai.cache.persisted_values import PersistedValueCache
from galleryai.capabilities.loader import RetryingLoader
from galleryai.capabilities.registry import CapabilityRegistry
from galleryai.config.settings import Settings
from galleryai.resources.image_cache import ImageCacheManager
from galleryai.resources.image_loader import ImageLoader

if TYPE_CHECKING:
    from galleryai.cache.base_durable_store import BaseDurableStore
    from galleryai.capabilities.base_capability import BaseCapability
    from galleryai.events.emitter import EventEmitter

logger = logging.getLogger(__name__)


def create_pipeline(
    settings: Settings | None = None,
    capabilities: Iterable[BaseCapability | str] = (),
    emitter: EventEmitter | None = None,
    durable_store: BaseDurableStore | None = None,
) -> AnalysisPipeline:
    """Wire an AnalysisPipeline.

    Args:
        settings: Application settings (defaults when None).
        capabilities: Capability instances or dotted class paths.
        emitter: Progress and lifecycle event sink.
        durable_store: Overrides the configured durable backend.
    """
    settings = settings or Settings()

    registry = CapabilityRegistry()
    for capability in capabilities:
        if isinstance(capability, str):
            registry.register_path(capability)
        else:
            registry.register(capability)

    if durable_store is None:
        durable_store = create_durable_store(settings)

    loader = RetryingLoader(
        max_retries=settings.max_retries,
        backoff_s=settings.retry_backoff_s,
        load_timeout_s=settings.capability_load_timeout_s,
        emitter=emitter,
    )
    cache: BoundedCache = BoundedCache(
        settings.max_cache_size,
        ttl_s=settings.cache_ttl_s,
        copy_on_write=True,
        name="analysis",
    )

    logger.info(
        "Created analysis pipeline: %d capabilities, %d workers, durable=%s",
        len(registry), settings.worker_count, settings.durable_cache_backend,
    )
    return AnalysisPipeline(
        registry,
        cache=cache,
        durable_store=durable_store,
        loader=loader,
        emitter=emitter,
        confidence_threshold=settings.confidence_threshold,
        worker_count=settings.worker_count,
        yield_interval_s=settings.drain_yield_s,
        vocabulary=get_vocabulary(settings.tag_locale),
        durable_ttl_s=settings.cache_ttl_s,
        initialize_timeout_s=settings.initialize_timeout_s,
    )


def create_image_loader(
    settings: Settings | None = None, emitter: EventEmitter | None = None
) -> ImageLoader:
    settings = settings or Settings()
    cache = ImageCacheManager(
        max_cache_size=settings.max_cache_size,
        max_thumbnail_cache_size=settings.max_thumbnail_cache_size,
        ttl_s=settings.cache_ttl_s,
    )
    return ImageLoader(
        cache,
        thumbnail_size=settings.thumbnail_size,
        thumbnail_quality=settings.thumbnail_quality,
        emitter=emitter,
        load_concurrency=settings.load_concurrency,
    )


def create_value_cache(
    store: BaseDurableStore,
    settings: Settings | None = None,
    namespace: str = "gallery",
) -> PersistedValueCache:
    """Generic persisted key/value tier over an existing durable store."""
    settings = settings or Settings()
    cache: BoundedCache = BoundedCache(
        settings.max_generic_cache_size,
        ttl_s=settings.cache_ttl_s,
        copy_on_write=True,
        name=f"values:{namespace}",
    )
    return PersistedValueCache(store, cache, namespace=namespace)
