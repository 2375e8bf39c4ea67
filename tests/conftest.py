"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from storefront_cache.core.config.settings import Settings  # noqa: E402
from storefront_cache.infrastructure.cache.cache_service import CacheService  # noqa: E402
from storefront_cache.infrastructure.cache.memory_store import MemoryStore  # noqa: E402
from storefront_cache.rate_limiting.rate_limiter import RateLimiter  # noqa: E402
from tests.test_fixtures import FakeRedis, ManualClock  # noqa: E402

# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode (see pyproject.toml), so async fixtures
# and tests need no explicit marker.


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def settings():
    """
    Isolated settings for one test.

    ENVIRONMENT is "development" so that rate limiting is active; tests that
    need the test-mode bypass build their own Settings(ENVIRONMENT="test").
    """
    return Settings(
        ENVIRONMENT="development",
        REDIS_KEY_PREFIX="storefront",
        CACHE_DEFAULT_TTL=300,
        CACHE_FALLBACK_MAX_ENTRIES=1000,
        LOG_FORMAT="console",
    )


@pytest.fixture
def clock():
    """Manually advanced time source."""
    return ManualClock()


# ============================================================================
# Cache Fixtures
# ============================================================================


@pytest.fixture
def fake_redis(clock):
    """In-memory backing store that can be switched down with go_down()."""
    return FakeRedis(clock=clock)


@pytest.fixture
def fallback_store(settings, clock):
    return MemoryStore(max_entries=settings.CACHE_FALLBACK_MAX_ENTRIES, clock=clock)


@pytest.fixture
async def cache_service(settings, fake_redis, fallback_store):
    """CacheService connected to the in-memory backing store."""
    service = CacheService(settings, backend=fake_redis, fallback=fallback_store)
    await service.init()
    yield service
    await service.close()


@pytest.fixture
async def degraded_cache(settings, fake_redis, fallback_store):
    """CacheService whose backing store is unreachable from the start."""
    fake_redis.go_down()
    service = CacheService(settings, backend=fake_redis, fallback=fallback_store)
    await service.init()
    yield service
    await service.close()


# ============================================================================
# Rate Limiting Fixtures
# ============================================================================


@pytest.fixture
def rate_limiter(cache_service, settings, clock):
    return RateLimiter(cache_service, settings, clock=clock)
