"""
Unit Tests for Concurrency Helpers
==================================
"""

import asyncio

import pytest

from otpauth_core.tasks import KeyedLock, PeriodicTask, stop_all


class TestKeyedLock:
    """Per-key mutual exclusion."""

    @pytest.mark.asyncio
    async def test_serializes_same_key(self):
        locks = KeyedLock()
        events = []

        async def worker(name):
            async with locks.acquire("k"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_overlap(self):
        locks = KeyedLock()
        inside = asyncio.Event()

        async def holder():
            async with locks.acquire("a"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def other():
            async with locks.acquire("b"):
                inside.set()

        await asyncio.gather(holder(), other())

    @pytest.mark.asyncio
    async def test_locks_released(self):
        locks = KeyedLock()
        async with locks.acquire("k"):
            assert len(locks) == 1
        assert len(locks) == 0


class TestPeriodicTask:
    """Background sweeps."""

    @pytest.mark.asyncio
    async def test_runs_until_stopped(self):
        calls = []

        async def sweep():
            calls.append(1)
            return len(calls)

        task = PeriodicTask("sweep", sweep, interval=0.01)
        task.start()
        task.start()
        await asyncio.sleep(0.08)
        assert task.running is True

        await stop_all([task])

        assert task.running is False
        assert len(calls) >= 2
        count = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_survives_failures(self):
        calls = []

        def sweep():
            calls.append(1)
            raise RuntimeError("database unavailable")

        task = PeriodicTask("failing", sweep, interval=0.01)
        task.start()
        await asyncio.sleep(0.06)
        await task.stop()

        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_run_once_sync_and_async(self):
        async def async_sweep():
            return 3

        assert await PeriodicTask("a", async_sweep).run_once() == 3
        assert await PeriodicTask("s", lambda: 5).run_once() == 5

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await PeriodicTask("idle", lambda: None).stop()
