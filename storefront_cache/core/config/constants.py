"""
System Constants and Enumerations

This module defines constants shared by the cache facade, the rate limiter and
the HTTP cache wrappers.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Key namespaces defined once, used by writers and invalidators alike
"""

from enum import Enum

# ============================================================================
# Backing Store Connection States
# ============================================================================


class ConnectionState(str, Enum):
    """
    Lifecycle states of the backing store connection.

    DISCONNECTED: Never connected (initial state)
    CONNECTING: First connection attempt in progress
    READY: Connected and accepting commands
    ERROR: Last connect or command failed at the connection level
    RECONNECTING: Background reconnect loop is running
    CLOSED: Explicitly disconnected, no reconnects
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


# ============================================================================
# Cache Tiers
# ============================================================================


class CacheTier(str, Enum):
    """
    Storage tier that served a cache operation.

    BACKING: Remote Redis store (primary)
    FALLBACK: In-process bounded map (degraded mode)
    """

    BACKING = "backing"
    FALLBACK = "fallback"


# ============================================================================
# Rate Limit Route Groups
# ============================================================================


class RouteGroup(str, Enum):
    """Logical route groups, each with its own rate-limit policy."""

    GENERAL = "general"
    AUTH = "auth"
    API = "api"
    UPLOAD = "upload"
    SEARCH = "search"
    ADMIN = "admin"


# Window length per route group (seconds)
RATE_LIMIT_WINDOWS: dict[RouteGroup, int] = {
    RouteGroup.GENERAL: 15 * 60,
    RouteGroup.AUTH: 15 * 60,
    RouteGroup.API: 15 * 60,
    RouteGroup.UPLOAD: 60 * 60,
    RouteGroup.SEARCH: 5 * 60,
    RouteGroup.ADMIN: 15 * 60,
}

# Paths that never count against the general limits
RATE_LIMIT_EXEMPT_PATHS = frozenset({"/health", "/metrics"})

# ============================================================================
# Cache Sizes and Timers
# ============================================================================

FALLBACK_MAX_ENTRIES = 1000  # Fallback store cap
FALLBACK_SWEEP_INTERVAL = 60  # Seconds between expiry sweeps
DEFAULT_TTL = 300  # Default TTL for set/cached (5 minutes)
FALLBACK_INCR_TTL = 300  # TTL given to counters created in fallback mode
REFRESH_THRESHOLD = 0.8  # cache_with_refresh default threshold
MAX_DETACHED_TASKS = 1000  # Pending background tasks before new work is dropped
KEY_DELIMITER = ":"

# ============================================================================
# HTTP Cache TTL Presets (seconds)
# ============================================================================


class CacheDuration:
    """TTL presets for cached GET endpoints."""

    PRODUCTS_LIST = 300
    PRODUCT_DETAIL = 600
    CATEGORIES = 1800
    USER_PROFILE = 300
    SEARCH_RESULTS = 180
    ANALYTICS = 900


# Glob patterns removed when a domain is written to
CACHE_INVALIDATION_PATTERNS: dict[str, tuple[str, ...]] = {
    "products": ("*:products:*", "*:search:*"),
    "categories": ("*:categories:*", "*:products:*"),
    "users": ("*:user:*",),
    "orders": ("*:orders:*", "*:analytics:*"),
}

# ============================================================================
# Redis Key Prefixes
# ============================================================================

REDIS_KEY_RATE_LIMIT = "rate_limit:"

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_CACHE = "X-Cache"
HEADER_CACHE_CONTROL = "Cache-Control"
HEADER_ETAG = "ETag"
HEADER_RATE_LIMIT = "RateLimit-Limit"
HEADER_RATE_REMAINING = "RateLimit-Remaining"
HEADER_RATE_RESET = "RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"

CACHE_HIT = "HIT"
CACHE_MISS = "MISS"
