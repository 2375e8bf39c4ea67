"""
Unit Tests for DetachedTaskRunner

Tests bounded fire-and-forget scheduling, failure accounting and shutdown.
"""

import asyncio

import pytest

from storefront_cache.core.resilience import DetachedTaskRunner


@pytest.mark.unit
class TestDetachedTaskRunner:
    """Test suite for DetachedTaskRunner."""

    async def test_spawned_work_runs_without_being_awaited(self):
        runner = DetachedTaskRunner()
        done = []

        async def work():
            done.append(True)

        task = runner.spawn(work(), "work")
        assert task is not None

        await runner.drain()

        assert done == [True]
        assert runner.pending_count == 0

    async def test_failures_are_counted_not_raised(self):
        runner = DetachedTaskRunner()

        async def boom():
            raise RuntimeError("boom")

        runner.spawn(boom(), "boom")
        await runner.drain()

        assert runner.failed_count == 1
        assert runner.pending_count == 0

    async def test_saturated_runner_drops_work(self):
        """Test that work beyond max_pending is dropped and counted."""
        runner = DetachedTaskRunner(max_pending=1)
        release = asyncio.Event()

        async def blocked():
            await release.wait()

        first = runner.spawn(blocked(), "first")
        second = runner.spawn(blocked(), "second")

        assert first is not None
        assert second is None
        assert runner.dropped_count == 1

        release.set()
        await runner.drain()

    async def test_drain_waits_for_work_spawned_by_tasks(self):
        runner = DetachedTaskRunner()
        order = []

        async def child():
            order.append("child")

        async def parent():
            order.append("parent")
            runner.spawn(child(), "child")

        runner.spawn(parent(), "parent")
        await runner.drain()

        assert order == ["parent", "child"]

    async def test_shutdown_cancels_stragglers(self):
        runner = DetachedTaskRunner()

        async def forever():
            await asyncio.sleep(3600)

        task = runner.spawn(forever(), "forever")
        await runner.shutdown(timeout=0.01)

        assert task.cancelled()
        assert runner.pending_count == 0
        assert runner.failed_count == 0
