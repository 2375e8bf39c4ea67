"""
Exception Module

Structured exception hierarchy for the storefront cache layer.

Module Structure:
-----------------
- **base.py**: ErrorKind, StorefrontError, InfrastructureError, ConfigurationError
- **cache.py**: Backing store failures and serialization errors
- **rate_limit.py**: Rate limiting exceptions

Usage:
------
```python
from storefront_cache.core.exceptions import CacheBackendError, RateLimitExceededError

try:
    await backend.get(key)
except CacheBackendError:
    value = fallback.get(key)
```
"""

from storefront_cache.core.exceptions.base import (
    ConfigurationError,
    ErrorKind,
    InfrastructureError,
    StorefrontError,
)
from storefront_cache.core.exceptions.cache import (
    CacheBackendError,
    CacheCommandError,
    CacheConnectionError,
    CacheError,
    CacheSerializationError,
    CacheTimeoutError,
)
from storefront_cache.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError

__all__ = [
    # Base
    "ErrorKind",
    "StorefrontError",
    "InfrastructureError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheBackendError",
    "CacheConnectionError",
    "CacheTimeoutError",
    "CacheCommandError",
    "CacheSerializationError",
    # Rate limit
    "RateLimitError",
    "RateLimitExceededError",
]
