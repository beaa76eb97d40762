# tests/unit/capabilities/test_unit_loader.py - v1
"""Tests for capabilities/loader.py - retries, backoff and partial success."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from galleryai.capabilities.loader import LoadSpec, RetryingLoader
from galleryai.capabilities.registry import CapabilityRegistry
from galleryai.events import emitter as events
from galleryai.events.emitter import EventEmitter


def _spec(name: str, fail_times: int = 0, always_fail: bool = False) -> tuple[LoadSpec, list]:
    attempts: list[int] = []

    async def load():
        attempts.append(1)
        if always_fail or len(attempts) <= fail_times:
            raise RuntimeError(f"{name} unavailable")

    return LoadSpec(name=name, load=load), attempts


class TestRetryingLoader:
    @pytest.mark.asyncio
    async def test_all_load(self):
        sleep = AsyncMock()
        loader = RetryingLoader(sleep=sleep)
        (a, _), (b, _) = _spec("mobilenet"), _spec("coco-ssd")
        state = await loader.load_all([a, b])
        assert state.loaded == {"mobilenet": True, "coco-ssd": True}
        assert state.retry_count == 0
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_success_is_success(self):
        sleep = AsyncMock()
        loader = RetryingLoader(sleep=sleep)
        (ok, _), (bad, bad_attempts) = _spec("mobilenet"), _spec("coco-ssd", always_fail=True)
        state = await loader.load_all([ok, bad])
        assert state.loaded == {"mobilenet": True, "coco-ssd": False}
        assert state.available == ["mobilenet"]
        assert len(bad_attempts) == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_whole_round_with_fixed_backoff(self):
        sleep = AsyncMock()
        loader = RetryingLoader(max_retries=3, backoff_s=2.0, sleep=sleep)
        spec, attempts = _spec("mobilenet", fail_times=2)
        state = await loader.load_all([spec])
        assert state.loaded == {"mobilenet": True}
        assert state.retry_count == 2
        assert len(attempts) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_do_not_raise(self):
        sleep = AsyncMock()
        loader = RetryingLoader(max_retries=3, sleep=sleep)
        (a, a_attempts), (b, _) = _spec("a", always_fail=True), _spec("b", always_fail=True)
        state = await loader.load_all([a, b])
        assert state.loaded == {"a": False, "b": False}
        assert state.any_loaded is False
        assert state.retry_count == 3
        assert len(a_attempts) == 4
        assert sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_zero_retries(self):
        loader = RetryingLoader(max_retries=0, sleep=AsyncMock())
        spec, attempts = _spec("a", always_fail=True)
        state = await loader.load_all([spec])
        assert state.loaded == {"a": False}
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_empty_specs(self):
        loader = RetryingLoader(sleep=AsyncMock())
        state = await loader.load_all([])
        assert state.loaded == {}
        assert state.any_loaded is False

    @pytest.mark.asyncio
    async def test_load_timeout_counts_as_failure(self):
        async def hang():
            await asyncio.sleep(10)

        loader = RetryingLoader(max_retries=0, load_timeout_s=0.01, sleep=AsyncMock())
        (fast, _) = _spec("fast")
        state = await loader.load_all([LoadSpec("slow", hang), fast])
        assert state.loaded == {"slow": False, "fast": True}

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryingLoader(max_retries=-1)

    @pytest.mark.asyncio
    async def test_state_is_a_snapshot(self):
        loader = RetryingLoader(sleep=AsyncMock())
        spec, _ = _spec("a")
        state = await loader.load_all([spec])
        state.loaded["a"] = False
        assert loader.state.loaded == {"a": True}

    @pytest.mark.asyncio
    async def test_reset(self):
        loader = RetryingLoader(max_retries=1, sleep=AsyncMock())
        spec, _ = _spec("a", always_fail=True)
        await loader.load_all([spec])
        assert loader.state.retry_count == 1
        loader.reset()
        assert loader.state.retry_count == 0
        assert loader.progress == 0.0


class TestLoaderEvents:
    @pytest.mark.asyncio
    async def test_progress_events(self):
        emitter = EventEmitter()
        progress: list[float] = []
        emitter.on(events.MODEL_PROGRESS, lambda p: progress.append(p["progress"]))
        loaded: list[dict] = []
        emitter.on(events.MODELS_LOADED, loaded.append)

        loader = RetryingLoader(emitter=emitter, sleep=AsyncMock())
        specs = [_spec(n)[0] for n in ("a", "b", "c", "d")]
        await loader.load_all(specs)

        assert progress == [25.0, 50.0, 75.0, 100.0]
        assert loader.progress == 100.0
        assert loaded == [{"loaded": {"a": True, "b": True, "c": True, "d": True}}]

    @pytest.mark.asyncio
    async def test_failure_events(self):
        emitter = EventEmitter()
        errors: list[dict] = []
        failed: list[dict] = []
        emitter.on(events.MODELS_ERROR, errors.append)
        emitter.on(events.MODELS_LOAD_FAILED, failed.append)

        loader = RetryingLoader(max_retries=2, emitter=emitter, sleep=AsyncMock())
        await loader.load_all([_spec("a", always_fail=True)[0]])

        assert len(errors) == 3
        assert failed == [{"retry_count": 2}]


class TestLoadRegistry:
    @pytest.mark.asyncio
    async def test_marks_loaded_capabilities(self, make_capability):
        good = make_capability("good")
        bad = make_capability("bad", fail_load=True)
        registry = CapabilityRegistry([good, bad])
        loader = RetryingLoader(sleep=AsyncMock())

        state = await loader.load_registry(registry)

        assert state.loaded == {"good": True, "bad": False}
        assert registry.is_loaded("good")
        assert not registry.is_loaded("bad")
        assert registry.loaded() == [good]

    @pytest.mark.asyncio
    async def test_from_capability(self, make_capability):
        capability = make_capability("mobilenet")
        spec = LoadSpec.from_capability(capability)
        assert spec.name == "mobilenet"
        await spec.load()
        assert capability.load_calls == 1
