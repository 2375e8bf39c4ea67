"""
Cache Module

Provides the dual-tier cache (Redis + in-process fallback).
"""

from .cache_service import CacheItem, CacheService
from .memory_store import MemoryStore
from .redis_client import RedisClient

__all__ = [
    "CacheItem",
    "CacheService",
    "MemoryStore",
    "RedisClient",
]
