# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for cache sizes, worker pool, retry policy
and durable cache backend.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Analysis scheduling ===
    worker_count: int = 2
    confidence_threshold: float = 0.3
    drain_yield_ms: int = 100
    tag_locale: Literal["zh", "en"] = "zh"

    # === Capability loading ===
    max_retries: int = 3
    retry_backoff_ms: int = 2000
    initialize_timeout_s: float = 10.0
    capability_load_timeout_s: float = 30.0

    # === In-memory caches ===
    max_cache_size: int = 100
    max_thumbnail_cache_size: int = 200
    max_generic_cache_size: int = 100
    cache_ttl_s: float = 24 * 60 * 60

    # === Images ===
    thumbnail_size: int = 240
    thumbnail_quality: int = 80
    load_concurrency: int = 3

    # === Durable cache ===
    durable_cache_backend: Literal["none", "memory", "json", "sqlite", "redis"] = "none"
    durable_cache_root: Path = Path("~/.galleryai/cache")
    durable_cache_redis_url: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "worker_count",
        "max_cache_size",
        "max_thumbnail_cache_size",
        "max_generic_cache_size",
        "thumbnail_size",
        "load_concurrency",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("max_retries", "retry_backoff_ms", "drain_yield_ms")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @field_validator("confidence_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:  # noqa: N805
        if not 0.0 <= v <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        return v

    @field_validator("cache_ttl_s", "initialize_timeout_s", "capability_load_timeout_s")
    @classmethod
    def validate_duration(cls, v: float, info) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("thumbnail_quality")
    @classmethod
    def validate_quality(cls, v: int) -> int:  # noqa: N805
        if not 1 <= v <= 100:
            raise ValueError("thumbnail_quality must be within [1, 100]")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.durable_cache_backend == "redis" and not self.durable_cache_redis_url:
            errors.append(
                "DURABLE_CACHE_REDIS_URL must be set when DURABLE_CACHE_BACKEND=redis"
            )

        if self.durable_cache_backend == "none" and self.durable_cache_redis_url:
            errors.append(
                "DURABLE_CACHE_REDIS_URL is set but DURABLE_CACHE_BACKEND is none"
            )

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def retry_backoff_s(self) -> float:
        return self.retry_backoff_ms / 1000.0

    @property
    def drain_yield_s(self) -> float:
        return self.drain_yield_ms / 1000.0


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
