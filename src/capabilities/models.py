# src/capabilities/models.py - v1
"""Inference output models and capability load state."""

from __future__ import annotations

from pydantic import BaseModel, Field


class BoundingBox(BaseModel):
    """Pixel box: top-left corner plus size."""

    x: float
    y: float
    width: float
    height: float


class Classification(BaseModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    source: str = ""


class Detection(BaseModel):
    label: str
    confidence: float = Field(ge=0.0, le=1.0)
    bounding_box: BoundingBox | None = None
    source: str = ""


class CapabilityState(BaseModel):
    """Which capabilities loaded, and how many retry rounds were spent."""

    loaded: dict[str, bool] = Field(default_factory=dict)
    retry_count: int = 0
    max_retries: int = 0

    @property
    def any_loaded(self) -> bool:
        return any(self.loaded.values())

    @property
    def available(self) -> list[str]:
        return [name for name, ok in self.loaded.items() if ok]
