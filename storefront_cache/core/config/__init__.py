"""
Configuration Module

Centralized, type-safe configuration for the storefront cache layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Key prefixes, TTL presets, rate-limit windows, HTTP headers

Usage:
------
```python
from storefront_cache.core.config import get_settings
from storefront_cache.core.config.constants import CacheDuration, RouteGroup

settings = get_settings()
prefix = settings.redis.REDIS_KEY_PREFIX
ttl = CacheDuration.PRODUCTS_LIST
```

Environment Variables:
---------------------
```bash
REDIS_HOST=localhost
REDIS_PORT=6379
REDIS_KEY_PREFIX=storefront
ENABLE_CACHING=true
CACHE_DEFAULT_TTL=300
RATE_LIMIT_AUTH=10
LOG_LEVEL=INFO
```

Testing:
-------
```python
from storefront_cache.core.config import reload_settings

os.environ["REDIS_HOST"] = "test-redis"
settings = reload_settings()
assert settings.redis.REDIS_HOST == "test-redis"
```
"""

from storefront_cache.core.config.constants import (
    CACHE_INVALIDATION_PATTERNS,
    RATE_LIMIT_WINDOWS,
    REDIS_KEY_RATE_LIMIT,
    CacheDuration,
    CacheTier,
    ConnectionState,
    RouteGroup,
)
from storefront_cache.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "CacheTier",
    "ConnectionState",
    "RouteGroup",
    # Presets
    "CacheDuration",
    "CACHE_INVALIDATION_PATTERNS",
    "RATE_LIMIT_WINDOWS",
    "REDIS_KEY_RATE_LIMIT",
]
