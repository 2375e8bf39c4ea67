"""
Rate Limiting Module

Fixed-window rate limiting per route group, stored in the cache service.
"""

from .rate_limiter import (
    RateLimiter,
    RateLimitPolicy,
    RateLimitStatus,
    build_policies,
    rate_limit_exceeded_handler,
    rate_limit_response,
)
from .store import RateLimitHit, RateLimitStore

__all__ = [
    "RateLimiter",
    "RateLimitPolicy",
    "RateLimitStatus",
    "RateLimitHit",
    "RateLimitStore",
    "build_policies",
    "rate_limit_exceeded_handler",
    "rate_limit_response",
]
