#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
storefront cache and rate-limiting layer. All configuration is centralized
here to ensure consistency across modules.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- IDE autocomplete for all settings
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the backing store tier.

    STAGE-0.1: Redis connection configuration

    Timeouts mirror the reference deployment: connect 10s, command 5s.
    Commands that time out are treated as a backing store failure and the
    facade falls through to the in-process store.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, ge=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="storefront", description="Global cache key prefix")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, gt=0, description="Maximum pool connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5, gt=0, description="Command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=10, gt=0, description="Connect timeout in seconds")
    REDIS_MAX_RETRIES: int = Field(default=2, ge=0, description="Per-command retries before failing")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_RECONNECT_MAX_DELAY: float = Field(default=30, gt=0, description="Reconnect backoff cap in seconds")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Cache facade configuration.

    STAGE-2: Cache TTL and fallback sizing
    """

    ENABLE_CACHING: bool = Field(default=True, description="Global caching switch")
    CACHE_DEFAULT_TTL: int = Field(default=300, gt=0, description="Default TTL (5 minutes)")
    CACHE_FALLBACK_MAX_ENTRIES: int = Field(default=1000, gt=0, description="Fallback store cap")
    CACHE_FALLBACK_SWEEP_INTERVAL: float = Field(default=60, gt=0, description="Fallback sweep period")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RateLimitSettings(BaseSettings):
    """
    Rate limiting thresholds (max requests per window, per route group).

    STAGE-3: Rate limiting thresholds

    Window lengths are fixed per group, see constants.RATE_LIMIT_WINDOWS.
    """

    ENABLE_RATE_LIMIT: bool = Field(default=True, description="Global rate limiting switch")
    RATE_LIMIT_GENERAL: int = Field(default=1000, gt=0, description="Requests per 15 minutes")
    RATE_LIMIT_AUTH: int = Field(default=10, gt=0, description="Auth requests per 15 minutes")
    RATE_LIMIT_API: int = Field(default=500, gt=0, description="API requests per 15 minutes")
    RATE_LIMIT_UPLOAD: int = Field(default=20, gt=0, description="Upload requests per hour")
    RATE_LIMIT_SEARCH: int = Field(default=100, gt=0, description="Search requests per 5 minutes")
    RATE_LIMIT_ADMIN: int = Field(default=200, gt=0, description="Admin requests per 15 minutes")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Storefront Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from storefront_cache.core.config import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        auth_limit = settings.rate_limit.RATE_LIMIT_AUTH

    Services take a Settings instance in their constructor, so tests build
    isolated instances with `Settings(ENABLE_CACHING=False, ...)`.
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, ge=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_KEY_PREFIX: str = Field(default="storefront", description="Global cache key prefix")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, gt=0, description="Maximum pool connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5, gt=0, description="Command timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=10, gt=0, description="Connect timeout in seconds")
    REDIS_MAX_RETRIES: int = Field(default=2, ge=0, description="Per-command retries before failing")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_RECONNECT_MAX_DELAY: float = Field(default=30, gt=0, description="Reconnect backoff cap in seconds")

    # Cache settings
    ENABLE_CACHING: bool = Field(default=True, description="Global caching switch")
    CACHE_DEFAULT_TTL: int = Field(default=300, gt=0, description="Default TTL (5 minutes)")
    CACHE_FALLBACK_MAX_ENTRIES: int = Field(default=1000, gt=0, description="Fallback store cap")
    CACHE_FALLBACK_SWEEP_INTERVAL: float = Field(default=60, gt=0, description="Fallback sweep period")

    # Rate Limiting settings
    ENABLE_RATE_LIMIT: bool = Field(default=True, description="Global rate limiting switch")
    RATE_LIMIT_GENERAL: int = Field(default=1000, gt=0, description="Requests per 15 minutes")
    RATE_LIMIT_AUTH: int = Field(default=10, gt=0, description="Auth requests per 15 minutes")
    RATE_LIMIT_API: int = Field(default=500, gt=0, description="API requests per 15 minutes")
    RATE_LIMIT_UPLOAD: int = Field(default=20, gt=0, description="Upload requests per hour")
    RATE_LIMIT_SEARCH: int = Field(default=100, gt=0, description="Search requests per 5 minutes")
    RATE_LIMIT_ADMIN: int = Field(default=200, gt=0, description="Admin requests per 15 minutes")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Storefront Cache Service", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="API host")
    API_PORT: int = Field(default=8000, description="API port")
    CORS_ORIGINS: list[str] = Field(default=["*"], description="Allowed CORS origins")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    # Nested configuration objects
    @property
    def redis(self) -> RedisSettings:
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_KEY_PREFIX=self.REDIS_KEY_PREFIX,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_MAX_RETRIES=self.REDIS_MAX_RETRIES,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RECONNECT_MAX_DELAY=self.REDIS_RECONNECT_MAX_DELAY,
        )

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            ENABLE_CACHING=self.ENABLE_CACHING,
            CACHE_DEFAULT_TTL=self.CACHE_DEFAULT_TTL,
            CACHE_FALLBACK_MAX_ENTRIES=self.CACHE_FALLBACK_MAX_ENTRIES,
            CACHE_FALLBACK_SWEEP_INTERVAL=self.CACHE_FALLBACK_SWEEP_INTERVAL,
        )

    @property
    def rate_limit(self) -> RateLimitSettings:
        """Get rate limit settings."""
        return RateLimitSettings(
            ENABLE_RATE_LIMIT=self.ENABLE_RATE_LIMIT,
            RATE_LIMIT_GENERAL=self.RATE_LIMIT_GENERAL,
            RATE_LIMIT_AUTH=self.RATE_LIMIT_AUTH,
            RATE_LIMIT_API=self.RATE_LIMIT_API,
            RATE_LIMIT_UPLOAD=self.RATE_LIMIT_UPLOAD,
            RATE_LIMIT_SEARCH=self.RATE_LIMIT_SEARCH,
            RATE_LIMIT_ADMIN=self.RATE_LIMIT_ADMIN,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> ApplicationSettings:
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            CORS_ORIGINS=self.CORS_ORIGINS,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
