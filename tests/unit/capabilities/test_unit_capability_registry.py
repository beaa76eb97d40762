# tests/unit/capabilities/test_unit_capability_registry.py - v1
"""Tests for capabilities/registry.py and the BaseCapability contract."""

from __future__ import annotations

import pytest

from galleryai.capabilities.base_capability import BaseCapability, CapabilityError
from galleryai.capabilities.models import CapabilityState
from galleryai.capabilities.registry import CapabilityRegistry, RegistryError


class _Bare(BaseCapability):
    @property
    def name(self) -> str:
        return "bare"

    async def load(self) -> None:
        return None


class TestBaseCapability:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BaseCapability()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_defaults_support_nothing(self):
        capability = _Bare()
        assert capability.supports_classification is False
        assert capability.supports_detection is False
        with pytest.raises(CapabilityError):
            await capability.classify(None)
        with pytest.raises(CapabilityError):
            await capability.detect(None)


class TestCapabilityRegistry:
    def test_register_and_get(self, make_capability):
        capability = make_capability("mobilenet")
        registry = CapabilityRegistry([capability])
        assert registry.get("mobilenet") is capability
        assert "mobilenet" in registry
        assert len(registry) == 1
        assert registry.names == ["mobilenet"]

    def test_get_or_raise(self):
        with pytest.raises(RegistryError, match="not found"):
            CapabilityRegistry().get_or_raise("missing")

    def test_overwrite_resets_loaded(self, make_capability):
        registry = CapabilityRegistry([make_capability("a")])
        registry.apply_state(CapabilityState(loaded={"a": True}))
        assert registry.is_loaded("a")
        registry.register(make_capability("a"))
        assert not registry.is_loaded("a")

    def test_apply_state_ignores_unknown_names(self, make_capability):
        registry = CapabilityRegistry([make_capability("a")])
        registry.apply_state(CapabilityState(loaded={"a": True, "ghost": True}))
        assert [c.name for c in registry.loaded()] == ["a"]

    def test_loaded_keeps_registration_order(self, make_capability):
        caps = [make_capability(n) for n in ("c", "a", "b")]
        registry = CapabilityRegistry(caps)
        registry.apply_state(CapabilityState(loaded={"a": True, "b": True, "c": True}))
        assert [c.name for c in registry.loaded()] == ["c", "a", "b"]

    def test_dispose_all(self, make_capability):
        a, b = make_capability("a"), make_capability("b")
        registry = CapabilityRegistry([a, b])
        registry.apply_state(CapabilityState(loaded={"a": True, "b": False}))
        registry.dispose_all()
        assert a.disposed is True
        assert b.disposed is False
        assert registry.loaded() == []


class TestRegisterPath:
    def test_invalid_path(self):
        with pytest.raises(RegistryError, match="Invalid class path"):
            CapabilityRegistry().register_path("nodots")

    def test_missing_module(self):
        with pytest.raises(RegistryError, match="Cannot import"):
            CapabilityRegistry().register_path("galleryai.nonexistent.Thing")

    def test_missing_class(self):
        with pytest.raises(RegistryError, match="not found"):
            CapabilityRegistry().register_path("galleryai.capabilities.models.Nope")

    def test_not_a_capability(self):
        with pytest.raises(RegistryError, match="not a BaseCapability"):
            CapabilityRegistry().register_path("galleryai.capabilities.models.BoundingBox")
