# src/resources/models.py - v1
"""Resource models: the input handed to analysis and the cached image handles."""

from __future__ import annotations

import io
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ImageResource(BaseModel):
    """An image to analyze, identified by file name+size, URL or raw bytes.

    ``handle`` is whatever the inference capabilities consume (a decoded
    PIL image when the resource comes from ImageLoader).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str | None = None
    size: int | None = None
    last_modified: float | None = None
    path: Path | None = None
    url: str | None = None
    data: bytes | None = Field(default=None, repr=False)
    media_type: str | None = None
    width: int = 0
    height: int = 0
    handle: Any = Field(default=None, exclude=True, repr=False)

    @property
    def source_id(self) -> str | None:
        """Human-facing identifier recorded in analysis metadata."""
        if self.name:
            return self.name
        return self.url


@dataclass
class Thumbnail:
    """Encoded JPEG thumbnail; the buffer is its releasable handle."""

    cache_key: str
    width: int
    height: int
    buffer: io.BytesIO = field(repr=False)

    @property
    def data(self) -> bytes:
        return self.buffer.getvalue()

    @property
    def closed(self) -> bool:
        return self.buffer.closed

    def close(self) -> None:
        self.buffer.close()


@dataclass
class LoadedImage:
    """A decoded image held by the image cache."""

    cache_key: str
    resource: ImageResource
    image: Any = field(repr=False)
    byte_size: int = 0
    thumbnail: Thumbnail | None = None
    loaded_at: float = field(default_factory=time.time)
    closed: bool = False

    def close(self) -> None:
        """Release the decoded pixels. The thumbnail has its own lifetime."""
        if self.closed:
            return
        close = getattr(self.image, "close", None)
        if callable(close):
            close()
        self.closed = True
