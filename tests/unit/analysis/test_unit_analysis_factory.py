# tests/unit/analysis/test_unit_analysis_factory.py - v1
"""Tests for analysis/factory.py."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from galleryai.analysis.factory import (
    create_image_loader,
    create_pipeline,
    create_value_cache,
)
from galleryai.analysis.vocabulary import EN
from galleryai.cache.memory_store import MemoryDurableStore
from galleryai.cache.persisted_values import PersistedValueCache
from galleryai.cache.sqlite_store import SqliteDurableStore
from galleryai.config.settings import Settings
from galleryai.resources.models import ImageResource


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestCreatePipeline:
    def test_defaults(self):
        pipeline = create_pipeline(_settings())
        assert len(pipeline.registry) == 0
        assert pipeline.confidence_threshold == 0.3
        assert pipeline.cache.capacity == 100
        assert pipeline.cache.ttl_s == 24 * 60 * 60
        assert pipeline.scheduler.stats().worker_count == 2

    def test_settings_applied(self):
        settings = _settings(
            worker_count=4, confidence_threshold=0.5, max_cache_size=10, tag_locale="en"
        )
        pipeline = create_pipeline(settings)
        assert pipeline.scheduler.stats().worker_count == 4
        assert pipeline.confidence_threshold == 0.5
        assert pipeline.cache.capacity == 10

    def test_capability_instances(self, dog_classifier):
        pipeline = create_pipeline(_settings(), capabilities=[dog_classifier])
        assert pipeline.registry.names == ["classifier"]

    def test_capability_class_paths(self, dog_classifier):
        with patch(
            "galleryai.capabilities.registry._import_capability",
            return_value=dog_classifier,
        ) as importer:
            pipeline = create_pipeline(
                _settings(), capabilities=["acme.models.DogClassifier"]
            )
        importer.assert_called_once_with("acme.models.DogClassifier")
        assert pipeline.registry.get("classifier") is dog_classifier

    def test_configured_durable_backend(self, tmp_path):
        settings = _settings(durable_cache_backend="sqlite", durable_cache_root=tmp_path)
        pipeline = create_pipeline(settings)
        assert isinstance(pipeline._durable_store, SqliteDurableStore)
        pipeline._durable_store.close()

    def test_explicit_durable_store_wins(self):
        store = MemoryDurableStore()
        pipeline = create_pipeline(
            _settings(durable_cache_backend="memory"), durable_store=store
        )
        assert pipeline._durable_store is store

    @pytest.mark.asyncio
    async def test_built_pipeline_analyzes(self, dog_classifier):
        settings = _settings(tag_locale="en", drain_yield_ms=0)
        pipeline = create_pipeline(settings, capabilities=[dog_classifier])
        result = await pipeline.analyze(ImageResource(name="a.jpg", size=1, width=4, height=4))
        assert result.tags == ("dog",)
        assert result.description.startswith(EN.subject_template.format(label="dog"))


class TestCreateImageLoader:
    def test_settings_applied(self):
        loader = create_image_loader(
            _settings(max_cache_size=7, max_thumbnail_cache_size=9, thumbnail_size=120)
        )
        assert loader.cache.images.capacity == 7
        assert loader.cache.thumbnails.capacity == 9

    @pytest.mark.asyncio
    async def test_loads_with_configured_thumbnail_size(self, png_file):
        loader = create_image_loader(_settings(thumbnail_size=80))
        loaded = await loader.load(png_file)
        assert loaded.thumbnail is not None
        assert (loaded.thumbnail.width, loaded.thumbnail.height) == (80, 40)


class TestCreateValueCache:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        store = MemoryDurableStore()
        values = create_value_cache(store, _settings(max_generic_cache_size=5), namespace="prefs")
        assert isinstance(values, PersistedValueCache)
        assert await values.set("theme", "dark") is True
        assert await store.keys() == ["prefs:theme"]
        assert await values.get("theme") == "dark"
