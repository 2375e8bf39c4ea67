"""
Rate Limiting Exceptions

All exceptions related to rate limiting operations
"""

from datetime import datetime, timezone
from typing import Any

from storefront_cache.core.exceptions.base import StorefrontError


class RateLimitError(StorefrontError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """
    Raised when a client exceeds the request quota of a policy.

    The 429 handler turns this into a response carrying:
    - RateLimit-Limit: Maximum requests allowed in the window
    - RateLimit-Remaining: Always 0 here
    - RateLimit-Reset: Seconds until the window resets
    - Retry-After: Same value, for clients that only know this header

    Attributes:
        policy: Name of the policy that rejected the request
        limit: Maximum requests per window
        reset_time: Window reset instant (epoch milliseconds)
        rejected_at: Instant of the rejection on the limiter clock (epoch
            milliseconds); Retry-After is computed against it
    """

    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        *,
        policy: str,
        limit: int,
        reset_time: int,
        rejected_at: float | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        self.policy = policy
        self.limit = limit
        self.reset_time = reset_time
        self.rejected_at = rejected_at
        self.details.setdefault("policy", policy)
        self.details.setdefault("limit", limit)

    def retry_after_seconds(self, now_ms: float) -> int:
        """Whole seconds until the window resets, never negative."""
        remaining_ms = self.reset_time - now_ms
        if remaining_ms <= 0:
            return 0
        return int(-(-remaining_ms // 1000))

    @property
    def retry_after_iso(self) -> str:
        """Reset instant as an ISO-8601 UTC timestamp."""
        moment = datetime.fromtimestamp(self.reset_time / 1000, tz=timezone.utc)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
