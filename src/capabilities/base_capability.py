# src/capabilities/base_capability.py - v1
"""Abstract inference capability (image classifier and/or object detector).

Implementations wrap a real model. The pipeline only calls classify/detect
on capabilities that loaded and declare support for the operation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from galleryai.capabilities.models import Classification, Detection

if TYPE_CHECKING:
    from galleryai.resources.models import ImageResource


class CapabilityError(Exception):
    """A capability could not load or run."""


class BaseCapability(ABC):
    """Unified interface for pluggable inference models."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique capability identifier (e.g. mobilenet, coco-ssd)."""

    @abstractmethod
    async def load(self) -> None:
        """Load model weights. Raises on failure."""

    @property
    def supports_classification(self) -> bool:
        return False

    @property
    def supports_detection(self) -> bool:
        return False

    async def classify(self, resource: ImageResource) -> list[Classification]:
        """Top labels for the whole image, best first."""
        raise CapabilityError(f"{self.name} does not support classification")

    async def detect(self, resource: ImageResource) -> list[Detection]:
        """Located objects, best first."""
        raise CapabilityError(f"{self.name} does not support detection")

    def dispose(self) -> None:
        """Release model resources."""
