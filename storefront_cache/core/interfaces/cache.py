"""
Cache Backend Protocol

This module defines the protocol the cache facade expects from its backing
store, so the facade can be built against Redis in production and against an
in-memory fake in tests.

Architectural Decision: Protocol-based abstraction
- Facilitates testing with fake implementations
- Follows dependency inversion principle
- Type-safe interface with runtime checking

Error contract: every coroutine below raises only exceptions from the
CacheBackendError family when the store is unreachable, slow or rejects the
command. Nothing else is allowed to escape an implementation.
"""

from typing import Any, Protocol, runtime_checkable

from storefront_cache.core.config.constants import ConnectionState


@runtime_checkable
class CacheBackend(Protocol):
    """
    Protocol for the remote key-value tier of the cache facade.

    Implementations:
    - RedisClient: Production Redis-backed store
    - FakeRedis (tests): in-memory store that can be switched "down"
    """

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        ...

    @property
    def connected(self) -> bool:
        """True only while the store is accepting commands."""
        ...

    async def connect(self) -> None:
        """
        Establish connection to the backing store.

        Raises:
            CacheConnectionError: If the first connection attempt fails
        """
        ...

    async def disconnect(self) -> None:
        ...

    async def ping(self) -> bool:
        """Return True if the store answers, never raises."""
        ...

    async def get(self, key: str) -> str | None:
        ...

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def keys(self, pattern: str) -> list[str]:
        """Return every key matching a glob-style pattern."""
        ...

    async def exists(self, *keys: str) -> int:
        ...

    async def incrby(self, key: str, amount: int) -> int:
        ...

    async def expire(self, key: str, ttl: int) -> bool:
        ...

    async def ttl(self, key: str) -> int:
        """TTL in seconds, -1 if no TTL, -2 if key doesn't exist."""
        ...

    async def mget(self, keys: list[str]) -> list[str | None]:
        ...

    async def mset_ex(self, entries: list[tuple[str, str, int]]) -> None:
        """Write (key, value, ttl) triples in a single pipelined round-trip."""
        ...

    async def dbsize(self) -> int:
        ...

    async def info(self, section: str | None = None) -> dict[str, Any]:
        ...

    async def flushdb(self) -> bool:
        ...

    async def health_check(self) -> dict[str, Any]:
        ...
