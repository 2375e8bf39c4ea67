"""
Cache-Related Exceptions

Two families live here and callers are expected to treat them differently:

- CacheBackendError and its subclasses describe an unreachable or failing
  backing store. The cache facade catches these and degrades to the
  in-process fallback store.
- CacheSerializationError describes a value that cannot be encoded. It is a
  caller bug and propagates.
"""

from storefront_cache.core.exceptions.base import InfrastructureError, StorefrontError


class CacheError(StorefrontError):
    """Base exception for cache-related errors."""
    pass


class CacheBackendError(CacheError, InfrastructureError):
    """Base for failures of the backing store (Redis)."""
    pass


class CacheConnectionError(CacheBackendError):
    """
    Raised when unable to reach the backing store.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    - Client not connected yet (or reconnecting)
    """
    pass


class CacheTimeoutError(CacheBackendError):
    """Raised when a backing store command exceeds the command timeout."""
    pass


class CacheCommandError(CacheBackendError):
    """
    Raised when the backing store rejects a command.

    Common causes:
    - Wrong value type for the operation (INCRBY on a JSON blob)
    - Memory limit exceeded (OOM)
    - Read-only replica
    """
    pass


class CacheSerializationError(CacheError):
    """Raised when a value cannot be encoded as JSON for storage."""
    pass
