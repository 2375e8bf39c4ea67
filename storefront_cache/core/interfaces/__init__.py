"""
Core Interfaces Module

Protocols for swappable infrastructure, enabling dependency injection and
testability.

Components:
-----------
- **cache.py**: CacheBackend protocol for the remote cache tier
"""

from storefront_cache.core.interfaces.cache import CacheBackend

__all__ = [
    "CacheBackend",
]
