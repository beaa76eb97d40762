# tests/conftest.py - v1
"""Shared test fixtures for all unit tests.

Provides stub capabilities, sample resources, generated images and a
manual clock. No network and no real models.
"""

from __future__ import annotations

import asyncio
import io

import pytest
from PIL import Image

from galleryai.capabilities.base_capability import BaseCapability
from galleryai.capabilities.models import Classification, Detection
from galleryai.logging.context import clear_context
from galleryai.resources.models import ImageResource


# === HELPERS ===


class ManualClock:
    """Deterministic clock for TTL and LRU tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubCapability(BaseCapability):
    """Capability returning canned outputs and counting invocations."""

    def __init__(
        self,
        name: str = "stub",
        classifications: list[Classification] | None = None,
        detections: list[Detection] | None = None,
        fail_load: bool = False,
        fail_analysis: bool = False,
        delay_s: float = 0.0,
    ) -> None:
        self._name = name
        self._classifications = classifications
        self._detections = detections
        self.fail_load = fail_load
        self.fail_analysis = fail_analysis
        self.delay_s = delay_s
        self.load_calls = 0
        self.classify_calls = 0
        self.detect_calls = 0
        self.disposed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def supports_classification(self) -> bool:
        return self._classifications is not None

    @property
    def supports_detection(self) -> bool:
        return self._detections is not None

    async def load(self) -> None:
        self.load_calls += 1
        if self.fail_load:
            raise RuntimeError(f"{self._name} weights unavailable")

    async def classify(self, resource):
        self.classify_calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail_analysis:
            raise RuntimeError(f"{self._name} classify crashed")
        return list(self._classifications or [])

    async def detect(self, resource):
        self.detect_calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.fail_analysis:
            raise RuntimeError(f"{self._name} detect crashed")
        return list(self._detections or [])

    def dispose(self) -> None:
        self.disposed = True


def make_png(width: int = 64, height: int = 48, color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


# === FIXTURES ===


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_capability():
    """Factory for StubCapability instances."""
    return StubCapability


@pytest.fixture
def dog_classifier() -> StubCapability:
    return StubCapability(
        name="classifier",
        classifications=[Classification(label="dog", confidence=0.8)],
    )


@pytest.fixture
def sample_resource() -> ImageResource:
    """File-backed 800x600 resource whose cache key is stable."""
    return ImageResource(name="beach.jpg", size=204_800, width=800, height=600)


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "photo.png"
    path.write_bytes(make_png(320, 160, "blue"))
    return path
