# tests/unit/concurrency/test_unit_single_flight.py - v1
"""Tests for concurrency/single_flight.py - one computation per key."""

from __future__ import annotations

import asyncio

import pytest

from galleryai.concurrency.single_flight import SingleFlightRegistry


class TestSingleFlightRegistry:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        registry: SingleFlightRegistry[str, dict] = SingleFlightRegistry()
        calls = 0
        gate = asyncio.Event()

        async def producer():
            nonlocal calls
            calls += 1
            await gate.wait()
            return {"value": 42}

        waiters = [asyncio.create_task(registry.run("k", producer)) for _ in range(10)]
        await asyncio.sleep(0)
        assert registry.in_flight("k")
        gate.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert all(r is results[0] for r in results)
        assert not registry.in_flight("k")
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_separately(self):
        registry: SingleFlightRegistry[str, str] = SingleFlightRegistry()
        calls: list[str] = []

        def producer_for(key):
            async def producer():
                calls.append(key)
                await asyncio.sleep(0)
                return key
            return producer

        results = await asyncio.gather(
            registry.run("a", producer_for("a")), registry.run("b", producer_for("b"))
        )
        assert results == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_clears_entry(self):
        registry: SingleFlightRegistry[str, int] = SingleFlightRegistry()
        calls = 0

        async def failing():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        outcomes = await asyncio.gather(
            registry.run("k", failing), registry.run("k", failing), return_exceptions=True
        )
        assert calls == 1
        assert all(isinstance(o, RuntimeError) for o in outcomes)
        assert not registry.in_flight("k")

        async def succeeding():
            return 7

        assert await registry.run("k", succeeding) == 7

    @pytest.mark.asyncio
    async def test_sequential_calls_run_again(self):
        registry: SingleFlightRegistry[str, int] = SingleFlightRegistry()
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            return calls

        assert await registry.run("k", producer) == 1
        assert await registry.run("k", producer) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_computation(self):
        registry: SingleFlightRegistry[str, str] = SingleFlightRegistry()
        gate = asyncio.Event()

        async def producer():
            await gate.wait()
            return "done"

        first = asyncio.create_task(registry.run("k", producer))
        second = asyncio.create_task(registry.run("k", producer))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        gate.set()

        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_keys(self):
        registry: SingleFlightRegistry[str, None] = SingleFlightRegistry()
        gate = asyncio.Event()

        async def producer():
            await gate.wait()

        task = asyncio.create_task(registry.run("k", producer))
        await asyncio.sleep(0)
        assert registry.keys() == ["k"]
        gate.set()
        await task
        assert registry.keys() == []

    @pytest.mark.asyncio
    async def test_join_registers_entry_immediately(self):
        registry: SingleFlightRegistry[str, int] = SingleFlightRegistry()
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            return 5

        first = registry.join("k", producer)
        assert registry.in_flight("k")
        second = registry.join("k", producer)
        assert second is first
        assert await asyncio.shield(first) == 5
        assert calls == 1
        assert not registry.in_flight("k")
