# src/analysis/models.py - v1
"""Analysis result models.

A result is immutable once produced. Caches store deep copies.
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from galleryai.capabilities.models import Classification, Detection

PROCESSING_VERSION = "1.0.0"


class ImageFeatures(BaseModel):
    """Features derived from image dimensions and generated tags."""

    model_config = ConfigDict(frozen=True)

    aspect_ratio: float
    orientation: Literal["landscape", "portrait", "square", "unknown"]
    resolution: int
    category: str
    complexity: float = Field(ge=0.0, le=1.0)


class AnalysisMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default_factory=time.time)
    source_id: str | None = None
    source_size: int | None = None
    cache_key: str | None = None
    fallback: bool = False
    error: str | None = None
    processing_version: str = PROCESSING_VERSION
    analysis_time_ms: int | None = None


class AnalysisResult(BaseModel):
    """Enriched analysis of one image.

    ``fallback`` results (metadata.fallback=True) stand in for a failed
    analysis: zero confidence, one generic tag, zeroed features.
    """

    model_config = ConfigDict(frozen=True)

    confidence: float = Field(ge=0.0, le=1.0)
    tags: tuple[str, ...] = ()
    description: str
    features: ImageFeatures
    classifications: tuple[Classification, ...] = ()
    detections: tuple[Detection, ...] = ()
    metadata: AnalysisMetadata = Field(default_factory=AnalysisMetadata)

    @property
    def fallback(self) -> bool:
        return self.metadata.fallback
