"""
In-Process Fallback Store

Bounded map with per-entry expiry, used by the cache facade whenever Redis is
unreachable or a command fails.

STAGE-2.1: Fallback (in-process) cache tier

Implementation Details:
- OrderedDict keyed by cache key, values are (serialized value, expires_at)
- Eviction is by insertion order: overwriting a key keeps its original
  position, and once the map grows past max_entries the oldest-inserted
  entry is removed
- Expiry is enforced lazily on read and by a periodic sweep task
- Every operation is synchronous, so mutations never interleave on the event
  loop and no lock is needed
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import NamedTuple

from storefront_cache.core.config.constants import FALLBACK_MAX_ENTRIES, FALLBACK_SWEEP_INTERVAL
from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)


class MemoryEntry(NamedTuple):
    value: str
    expires_at: float


class MemoryStore:
    """
    Fallback tier of the cache facade.

    Values are stored in their serialized (JSON) form so that every read hands
    out a fresh copy, exactly like a read from Redis.

    Args:
        max_entries: Maximum number of entries kept
        clock: Callable returning the current time in seconds
    """

    def __init__(
        self,
        max_entries: int = FALLBACK_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, MemoryEntry] = OrderedDict()
        self._sweep_task: asyncio.Task | None = None
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def evictions(self) -> int:
        return self._evictions

    def _entry(self, key: str) -> MemoryEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        """Return the serialized value, or None if absent or expired."""
        entry = self._entry(key)
        return entry.value if entry else None

    def set(self, key: str, value: str, ttl: float) -> None:
        """
        Insert or overwrite a key.

        Args:
            key: Cache key
            value: Serialized value
            ttl: Time-to-live in seconds
        """
        self._entries[key] = MemoryEntry(value, self._clock() + ttl)

        if len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Fallback store evicted oldest entry", stage="MEM.EVICT", key=evicted)

    def delete(self, key: str) -> bool:
        """Remove a key. Idempotent."""
        return self._entries.pop(key, None) is not None

    def expire(self, key: str, ttl: float) -> bool:
        """Reset the expiry of a live key. Returns False if absent."""
        entry = self._entry(key)
        if entry is None:
            return False
        self._entries[key] = entry._replace(expires_at=self._clock() + ttl)
        return True

    def ttl(self, key: str) -> int:
        """Whole seconds left (floored), or -2 if absent or expired."""
        entry = self._entry(key)
        if entry is None:
            return -2
        return max(0, int(entry.expires_at - self._clock()))

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """
        Drop every expired entry.

        STAGE-2.1.1: Fallback sweep

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Fallback store swept", stage="MEM.SWEEP", removed=len(expired))
        return len(expired)

    # -------------------------------------------------------------------------
    # Periodic sweep
    # -------------------------------------------------------------------------

    def start_sweeper(self, interval: float = FALLBACK_SWEEP_INTERVAL) -> None:
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(
            self._sweep_loop(interval), name="fallback-sweeper"
        )

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    async def stop_sweeper(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
