"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import pytest
from pydantic import ValidationError

from storefront_cache.core.config import reload_settings
from storefront_cache.core.config.constants import (
    CACHE_INVALIDATION_PATTERNS,
    RATE_LIMIT_WINDOWS,
    CacheDuration,
    RouteGroup,
)
from storefront_cache.core.config.settings import Settings, get_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Test Settings default values."""

    def test_settings_has_required_sections(self):
        """Test that Settings exposes every configuration section."""
        settings = Settings()

        assert settings.redis is not None
        assert settings.cache is not None
        assert settings.rate_limit is not None
        assert settings.logging is not None
        assert settings.app is not None

    def test_redis_defaults(self):
        """Test the backing store defaults."""
        redis = Settings().redis

        assert redis.REDIS_HOST == "localhost"
        assert redis.REDIS_PORT == 6379
        assert redis.REDIS_DB == 0
        assert redis.REDIS_KEY_PREFIX == "storefront"
        assert redis.REDIS_SOCKET_CONNECT_TIMEOUT == 10
        assert redis.REDIS_SOCKET_TIMEOUT == 5

    def test_cache_defaults(self):
        """Test that caching is on with a five minute default TTL."""
        cache = Settings().cache

        assert cache.ENABLE_CACHING is True
        assert cache.CACHE_DEFAULT_TTL == 300
        assert cache.CACHE_FALLBACK_MAX_ENTRIES == 1000

    def test_rate_limit_defaults(self):
        """Test the per-group thresholds."""
        limits = Settings().rate_limit

        assert limits.RATE_LIMIT_GENERAL == 1000
        assert limits.RATE_LIMIT_AUTH == 10
        assert limits.RATE_LIMIT_API == 500
        assert limits.RATE_LIMIT_UPLOAD == 20
        assert limits.RATE_LIMIT_SEARCH == 100
        assert limits.RATE_LIMIT_ADMIN == 200

    def test_overrides_flow_into_sections(self):
        """Test that constructor overrides are visible through the section views."""
        settings = Settings(ENABLE_CACHING=False, RATE_LIMIT_AUTH=3, ENVIRONMENT="test")

        assert settings.cache.ENABLE_CACHING is False
        assert settings.rate_limit.RATE_LIMIT_AUTH == 3
        assert settings.app.ENVIRONMENT == "test"


@pytest.mark.unit
class TestSettingsValidation:
    """Test fail-fast validation."""

    def test_log_level_is_normalized(self):
        """Test that LOG_LEVEL is upper-cased."""
        assert Settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="LOUD")

    @pytest.mark.parametrize(
        "field", ["RATE_LIMIT_GENERAL", "RATE_LIMIT_AUTH", "CACHE_DEFAULT_TTL", "CACHE_FALLBACK_MAX_ENTRIES"]
    )
    def test_non_positive_thresholds_rejected(self, field):
        """Test that thresholds and TTLs must be positive."""
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(ENVIRONMENT="qa")


@pytest.mark.unit
class TestSettingsSingleton:
    """Test the process-wide settings instance."""

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_instance(self, monkeypatch):
        """Test that reload_settings picks up environment changes."""
        monkeypatch.setenv("RATE_LIMIT_SEARCH", "42")
        try:
            settings = reload_settings()
            assert settings.rate_limit.RATE_LIMIT_SEARCH == 42
            assert get_settings() is settings
        finally:
            monkeypatch.delenv("RATE_LIMIT_SEARCH")
            reload_settings()


@pytest.mark.unit
class TestConstants:
    """Test route group windows and cache presets."""

    def test_route_group_windows(self):
        assert RATE_LIMIT_WINDOWS[RouteGroup.GENERAL] == 15 * 60
        assert RATE_LIMIT_WINDOWS[RouteGroup.AUTH] == 15 * 60
        assert RATE_LIMIT_WINDOWS[RouteGroup.UPLOAD] == 60 * 60
        assert RATE_LIMIT_WINDOWS[RouteGroup.SEARCH] == 5 * 60

    def test_cache_durations(self):
        assert CacheDuration.PRODUCTS_LIST == 300
        assert CacheDuration.PRODUCT_DETAIL == 600
        assert CacheDuration.CATEGORIES == 1800
        assert CacheDuration.SEARCH_RESULTS == 180

    def test_invalidation_patterns(self):
        assert CACHE_INVALIDATION_PATTERNS["products"] == ("*:products:*", "*:search:*")
        assert CACHE_INVALIDATION_PATTERNS["orders"] == ("*:orders:*", "*:analytics:*")
