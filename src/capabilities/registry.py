# src/capabilities/registry.py - v1
"""Capability registry: the explicit set of inference models a pipeline uses.

Capabilities are registered by instance or imported from dotted class
paths. Availability is recorded here by the loader, so consumers ask the
registry instead of probing for optional libraries.
"""

from __future__ import annotations

import importlib
import logging

from galleryai.capabilities.base_capability import BaseCapability
from galleryai.capabilities.models import CapabilityState

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when capability loading or lookup fails."""


class CapabilityRegistry:
    """Registered capabilities plus their loaded/unloaded state."""

    def __init__(self, capabilities: list[BaseCapability] | None = None) -> None:
        self._capabilities: dict[str, BaseCapability] = {}
        self._loaded: set[str] = set()
        for capability in capabilities or []:
            self.register(capability)

    @property
    def names(self) -> list[str]:
        """Registered names in registration order."""
        return list(self._capabilities.keys())

    def register(self, capability: BaseCapability) -> None:
        if capability.name in self._capabilities:
            logger.warning("Overwriting existing capability: %s", capability.name)
            self._loaded.discard(capability.name)
        self._capabilities[capability.name] = capability

    def register_path(self, class_path: str) -> BaseCapability:
        """Import, instantiate and register a capability class."""
        capability = _import_capability(class_path)
        self.register(capability)
        return capability

    def get(self, name: str) -> BaseCapability | None:
        return self._capabilities.get(name)

    def get_or_raise(self, name: str) -> BaseCapability:
        capability = self._capabilities.get(name)
        if capability is None:
            raise RegistryError(f"Capability '{name}' not found in registry")
        return capability

    def apply_state(self, state: CapabilityState) -> None:
        """Record the loader's outcome."""
        self._loaded = {
            name for name, ok in state.loaded.items() if ok and name in self._capabilities
        }

    def is_loaded(self, name: str) -> bool:
        return name in self._loaded

    def loaded(self) -> list[BaseCapability]:
        """Loaded capabilities in registration order."""
        return [c for name, c in self._capabilities.items() if name in self._loaded]

    def dispose_all(self) -> None:
        for name in list(self._loaded):
            try:
                self._capabilities[name].dispose()
                logger.info("Disposed capability: %s", name)
            except Exception as exc:
                logger.warning("Failed to dispose capability %s: %s", name, exc)
        self._loaded.clear()

    def __len__(self) -> int:
        return len(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities


def _import_capability(class_path: str) -> BaseCapability:
    """Import and instantiate a capability from a dotted class path.

    Args:
        class_path: e.g. 'mygallery.models.MobileNetCapability'
    """
    parts = class_path.rsplit(".", 1)
    if len(parts) != 2:
        raise RegistryError(f"Invalid class path: {class_path}")
    module_path, class_name = parts

    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise RegistryError(f"Cannot import module {module_path}: {exc}") from exc

    cls = getattr(module, class_name, None)
    if cls is None:
        raise RegistryError(f"Class {class_name} not found in {module_path}")

    if not isinstance(cls, type) or not issubclass(cls, BaseCapability):
        raise RegistryError(f"{class_path} is not a BaseCapability subclass")

    return cls()
