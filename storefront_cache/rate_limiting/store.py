"""
Rate Limit Store

Fixed-window request counters kept in the cache service.

STAGE-3.1: Rate limit window storage

Window lifecycle per client key:
    1. No window (or an expired one): create {count: 1, reset_time: now + window}
       stored with TTL = window length
    2. Live window: count + 1, reset_time preserved, re-stored with the TTL
       that is left
    3. decrement(): count - 1, window deleted once it reaches 0 or has expired
    4. reset_key(): window deleted

Every operation fails open: a cache failure while counting lets the request
through instead of turning an infrastructure blip into an outage.
"""

import math
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

from storefront_cache.core.config.constants import REDIS_KEY_RATE_LIMIT
from storefront_cache.core.logging.logger import get_logger
from storefront_cache.infrastructure.cache.cache_service import CacheService

logger = get_logger(__name__)


class RateLimitHit(NamedTuple):
    """Result of counting one request."""

    total_hits: int
    reset_time: int  # epoch milliseconds

    @property
    def reset_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_time / 1000, tz=timezone.utc)


class RateLimitStore:
    """
    Counter contract (increment / decrement / reset_key) on top of CacheService.

    Args:
        cache: Cache service used for storage
        window_seconds: Length of one window
        clock: Callable returning the current time in seconds
    """

    def __init__(
        self,
        cache: CacheService,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
        prefix: str = REDIS_KEY_RATE_LIMIT,
    ):
        self._cache = cache
        self._window_seconds = window_seconds
        self._clock = clock
        self._prefix = prefix

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _window(value: Any) -> tuple[int, int] | None:
        if not isinstance(value, dict):
            return None
        count = value.get("count")
        reset_time = value.get("reset_time")
        if not isinstance(count, int) or not isinstance(reset_time, int):
            return None
        return count, reset_time

    async def increment(self, key: str) -> RateLimitHit:
        """
        Count one request for a client key.

        Never raises.

        Returns:
            RateLimitHit with the hits in the current window and its reset time
        """
        now_ms = self._now_ms()
        window_ms = int(self._window_seconds * 1000)
        cache_key = self._key(key)

        try:
            window = self._window(await self._cache.get(cache_key))
            if window is not None:
                count, reset_time = window
                ttl = math.ceil((reset_time - now_ms) / 1000)
                if ttl > 0:
                    new_count = count + 1
                    await self._cache.set(
                        cache_key, {"count": new_count, "reset_time": reset_time}, ttl
                    )
                    return RateLimitHit(new_count, reset_time)

            reset_time = now_ms + window_ms
            await self._cache.set(
                cache_key, {"count": 1, "reset_time": reset_time}, math.ceil(self._window_seconds)
            )
            return RateLimitHit(1, reset_time)

        except Exception as e:
            logger.warning(
                "Rate limit store error, allowing request",
                stage="RATE.1",
                client_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RateLimitHit(1, now_ms + window_ms)

    async def decrement(self, key: str) -> None:
        """Undo one counted request. Never raises."""
        cache_key = self._key(key)
        try:
            window = self._window(await self._cache.get(cache_key))
            if window is None or window[0] <= 0:
                return

            count, reset_time = window
            new_count = count - 1
            ttl = math.ceil((reset_time - self._now_ms()) / 1000)

            if new_count <= 0 or ttl <= 0:
                await self._cache.delete(cache_key)
            else:
                await self._cache.set(
                    cache_key, {"count": new_count, "reset_time": reset_time}, ttl
                )
        except Exception as e:
            logger.warning(
                "Rate limit decrement failed", stage="RATE.2", client_key=key, error=str(e)
            )

    async def reset_key(self, key: str) -> None:
        """Drop the window for a client key. Never raises."""
        try:
            await self._cache.delete(self._key(key))
        except Exception as e:
            logger.warning(
                "Rate limit reset failed", stage="RATE.3", client_key=key, error=str(e)
            )
