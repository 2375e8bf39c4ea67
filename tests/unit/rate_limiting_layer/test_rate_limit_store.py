"""
Unit Tests for RateLimitStore

Tests fixed-window counting on top of the cache facade, including window
rollover and fail-open behaviour.
"""

from unittest.mock import AsyncMock

import pytest

from storefront_cache.core.exceptions import CacheSerializationError
from storefront_cache.rate_limiting.store import RateLimitStore


@pytest.fixture
def store(cache_service, clock):
    return RateLimitStore(cache_service, window_seconds=1, clock=clock)


@pytest.mark.unit
class TestIncrement:
    """Test window creation and counting."""

    async def test_counts_within_window(self, store, clock):
        start_ms = int(clock() * 1000)

        hits = [await store.increment("1.2.3.4") for _ in range(3)]

        assert [hit.total_hits for hit in hits] == [1, 2, 3]
        assert {hit.reset_time for hit in hits} == {start_ms + 1000}

    async def test_window_rolls_over_after_reset_time(self, store, clock):
        for _ in range(4):
            await store.increment("1.2.3.4")

        clock.advance(1.1)
        hit = await store.increment("1.2.3.4")

        assert hit.total_hits == 1
        assert hit.reset_time == int(clock() * 1000) + 1000

    async def test_keys_are_independent(self, store):
        await store.increment("a")
        await store.increment("a")

        assert (await store.increment("b")).total_hits == 1

    async def test_window_stored_under_prefixed_key(self, store, cache_service):
        await store.increment("auth:1.2.3.4")

        window = await cache_service.get("rate_limit:auth:1.2.3.4")
        assert window["count"] == 1

    async def test_counts_in_fallback_mode(self, degraded_cache, clock):
        store = RateLimitStore(degraded_cache, window_seconds=60, clock=clock)

        await store.increment("ip")
        assert (await store.increment("ip")).total_hits == 2

    async def test_reset_datetime(self, store):
        hit = await store.increment("ip")
        assert hit.reset_datetime.timestamp() * 1000 == pytest.approx(hit.reset_time)


@pytest.mark.unit
class TestFailOpen:
    """Test that storage failures never block requests."""

    async def test_increment_never_raises(self, cache_service, clock):
        cache_service.get = AsyncMock(side_effect=RuntimeError("store exploded"))
        cache_service.set = AsyncMock(side_effect=RuntimeError("store exploded"))
        store = RateLimitStore(cache_service, window_seconds=60, clock=clock)

        for _ in range(5):
            hit = await store.increment("ip")
            assert hit.total_hits == 1
            assert hit.reset_time == int(clock() * 1000) + 60_000

    async def test_serialization_error_fails_open(self, cache_service, clock):
        cache_service.set = AsyncMock(side_effect=CacheSerializationError("bad"))
        store = RateLimitStore(cache_service, window_seconds=60, clock=clock)

        assert (await store.increment("ip")).total_hits == 1

    async def test_decrement_and_reset_never_raise(self, cache_service, clock):
        cache_service.get = AsyncMock(side_effect=RuntimeError("down"))
        cache_service.delete = AsyncMock(side_effect=RuntimeError("down"))
        store = RateLimitStore(cache_service, window_seconds=60, clock=clock)

        await store.decrement("ip")
        await store.reset_key("ip")


@pytest.mark.unit
class TestDecrementAndReset:
    """Test un-counting and window removal."""

    async def test_decrement_lowers_count(self, store):
        await store.increment("ip")
        await store.increment("ip")

        await store.decrement("ip")

        assert (await store.increment("ip")).total_hits == 2

    async def test_decrement_to_zero_deletes_window(self, store, cache_service):
        await store.increment("ip")
        await store.decrement("ip")

        assert await cache_service.get("rate_limit:ip") is None

    async def test_decrement_without_window_is_noop(self, store, cache_service):
        await store.decrement("ip")
        assert await cache_service.get("rate_limit:ip") is None

    async def test_reset_key(self, store):
        for _ in range(3):
            await store.increment("ip")

        await store.reset_key("ip")

        assert (await store.increment("ip")).total_hits == 1
