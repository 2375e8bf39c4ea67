"""
Rate Limiter

Per-route-group fixed-window rate limiting backed by the cache service.

Features:
- One policy per route group (general, auth, api, upload, search, admin)
- Client keys built from the remote address (slowapi) and the authenticated user
- Admin users, /health, /metrics and the test environment bypass limits
- Standard RateLimit-* response headers, Retry-After on rejection
- Fails open when the cache is unavailable
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address

from storefront_cache.core.config.constants import (
    HEADER_RATE_LIMIT,
    HEADER_RATE_REMAINING,
    HEADER_RATE_RESET,
    HEADER_RETRY_AFTER,
    RATE_LIMIT_EXEMPT_PATHS,
    RATE_LIMIT_WINDOWS,
    RouteGroup,
)
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import RateLimitExceededError
from storefront_cache.core.logging import get_logger
from storefront_cache.infrastructure.cache.cache_service import CacheService
from storefront_cache.rate_limiting.store import RateLimitStore

logger = get_logger(__name__)

KeyFunc = Callable[[Request], str]
SkipFunc = Callable[[Request, str], bool]


# =============================================================================
# REQUEST IDENTITY
# =============================================================================


def get_request_user(request: Request) -> Any:
    """User placed on request.state by the authentication layer, if any."""
    return getattr(request.state, "user", None)


def _user_field(user: Any, name: str) -> Any:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get(name)
    return getattr(user, name, None)


def get_user_id(request: Request) -> str | None:
    user_id = _user_field(get_request_user(request), "id")
    return str(user_id) if user_id is not None else None


def is_admin(request: Request) -> bool:
    return _user_field(get_request_user(request), "role") == "admin"


def general_key(request: Request) -> str:
    """`ip` or `ip:userId`."""
    ip = get_remote_address(request)
    user_id = get_user_id(request)
    return f"{ip}:{user_id}" if user_id else ip


def auth_key(request: Request) -> str:
    return f"auth:{get_remote_address(request)}"


def group_key(group: str) -> KeyFunc:
    """`<group>:ip` or `<group>:ip:userId`."""

    def key_func(request: Request) -> str:
        ip = get_remote_address(request)
        user_id = get_user_id(request)
        return f"{group}:{ip}:{user_id}" if user_id else f"{group}:{ip}"

    return key_func


def admin_key(request: Request) -> str:
    return f"admin:{get_remote_address(request)}:{get_user_id(request) or 'anonymous'}"


# =============================================================================
# SKIP RULES
# =============================================================================


def skip_in_test(request: Request, environment: str) -> bool:
    return environment == "test"


def skip_exempt(request: Request, environment: str) -> bool:
    """Health/metrics endpoints, admin users and the test environment."""
    if request.url.path in RATE_LIMIT_EXEMPT_PATHS:
        return True
    if is_admin(request):
        return True
    return skip_in_test(request, environment)


# =============================================================================
# POLICIES
# =============================================================================


@dataclass(frozen=True)
class RateLimitPolicy:
    """
    Limit applied to one route group.

    Attributes:
        name: Route group name (used in logs and error details)
        window_seconds: Window length
        max_requests: Requests allowed per window
        key_func: Client key for a request
        skip: Predicate that exempts a request
        skip_failed_requests: Un-count responses with status >= 400
    """

    name: str
    window_seconds: int
    max_requests: int
    key_func: KeyFunc = general_key
    skip: SkipFunc = field(default=skip_exempt)
    skip_failed_requests: bool = False


def build_policies(settings: Settings) -> dict[RouteGroup, RateLimitPolicy]:
    """
    Route group policies from configuration.

    STAGE-3.0: Rate limit policy setup
    """
    limits = settings.rate_limit
    return {
        RouteGroup.GENERAL: RateLimitPolicy(
            name=RouteGroup.GENERAL.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.GENERAL],
            max_requests=limits.RATE_LIMIT_GENERAL,
            key_func=general_key,
            skip=skip_exempt,
        ),
        RouteGroup.AUTH: RateLimitPolicy(
            name=RouteGroup.AUTH.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.AUTH],
            max_requests=limits.RATE_LIMIT_AUTH,
            key_func=auth_key,
            skip=skip_in_test,
        ),
        RouteGroup.API: RateLimitPolicy(
            name=RouteGroup.API.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.API],
            max_requests=limits.RATE_LIMIT_API,
            key_func=group_key(RouteGroup.API.value),
            skip=skip_exempt,
        ),
        RouteGroup.UPLOAD: RateLimitPolicy(
            name=RouteGroup.UPLOAD.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.UPLOAD],
            max_requests=limits.RATE_LIMIT_UPLOAD,
            key_func=group_key(RouteGroup.UPLOAD.value),
            skip=skip_in_test,
        ),
        RouteGroup.SEARCH: RateLimitPolicy(
            name=RouteGroup.SEARCH.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.SEARCH],
            max_requests=limits.RATE_LIMIT_SEARCH,
            key_func=group_key(RouteGroup.SEARCH.value),
            skip=skip_exempt,
        ),
        RouteGroup.ADMIN: RateLimitPolicy(
            name=RouteGroup.ADMIN.value,
            window_seconds=RATE_LIMIT_WINDOWS[RouteGroup.ADMIN],
            max_requests=limits.RATE_LIMIT_ADMIN,
            key_func=admin_key,
            skip=skip_in_test,
        ),
    }


# =============================================================================
# LIMITER
# =============================================================================


@dataclass(frozen=True)
class RateLimitStatus:
    """Outcome of a counted request, used to render response headers."""

    policy: str
    limit: int
    total_hits: int
    reset_time: int  # epoch milliseconds
    client_key: str

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.total_hits)

    def reset_seconds(self, now_ms: float) -> int:
        return max(0, math.ceil((self.reset_time - now_ms) / 1000))


class RateLimiter:
    """
    Evaluates rate limit policies against requests.

    One RateLimitStore is kept per window length so that groups sharing a
    window share a store instance; client keys are already group-prefixed.

    Usage:
        limiter = RateLimiter(cache, settings)
        status = await limiter.hit(request, limiter.policy(RouteGroup.AUTH))
        limiter.apply_headers(response, status)
    """

    def __init__(
        self,
        cache: CacheService,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
        policies: dict[RouteGroup, RateLimitPolicy] | None = None,
    ):
        self._cache = cache
        self._settings = settings or get_settings()
        self._clock = clock
        self._enabled = self._settings.rate_limit.ENABLE_RATE_LIMIT
        self._environment = self._settings.ENVIRONMENT
        self._policies = policies or build_policies(self._settings)
        self._stores: dict[float, RateLimitStore] = {}

        logger.info(
            "Rate limiter initialized",
            stage="RATE.0",
            enabled=self._enabled,
            groups=[group.value for group in self._policies],
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def policy(self, group: RouteGroup) -> RateLimitPolicy:
        return self._policies[group]

    def store_for(self, policy: RateLimitPolicy) -> RateLimitStore:
        store = self._stores.get(policy.window_seconds)
        if store is None:
            store = RateLimitStore(self._cache, policy.window_seconds, clock=self._clock)
            self._stores[policy.window_seconds] = store
        return store

    def should_skip(self, request: Request, policy: RateLimitPolicy) -> bool:
        return not self._enabled or policy.skip(request, self._environment)

    async def hit(self, request: Request, policy: RateLimitPolicy) -> RateLimitStatus | None:
        """
        Count a request against a policy.

        STAGE-RATE.1: Rate limit check

        Returns:
            The window status, or None if the request is exempt

        Raises:
            RateLimitExceededError: If the request is over the limit
        """
        if self.should_skip(request, policy):
            return None

        client_key = policy.key_func(request)
        counted = await self.store_for(policy).increment(client_key)
        status = RateLimitStatus(
            policy=policy.name,
            limit=policy.max_requests,
            total_hits=counted.total_hits,
            reset_time=counted.reset_time,
            client_key=client_key,
        )

        if counted.total_hits > policy.max_requests:
            logger.warning(
                "Rate limit exceeded",
                stage="RATE.1",
                policy=policy.name,
                client_key=client_key,
                hits=counted.total_hits,
                limit=policy.max_requests,
            )
            raise RateLimitExceededError(
                policy=policy.name,
                limit=policy.max_requests,
                reset_time=counted.reset_time,
                rejected_at=self._clock() * 1000,
                details={"hits": counted.total_hits},
            )

        return status

    async def release(self, request: Request, policy: RateLimitPolicy, status_code: int) -> None:
        """Un-count a finished request when the policy skips failed requests."""
        if policy.skip_failed_requests and status_code >= 400:
            await self.store_for(policy).decrement(policy.key_func(request))

    async def reset(self, request: Request, policy: RateLimitPolicy) -> None:
        await self.store_for(policy).reset_key(policy.key_func(request))

    def apply_headers(self, response: Response, status: RateLimitStatus | None) -> None:
        if status is None:
            return
        response.headers[HEADER_RATE_LIMIT] = str(status.limit)
        response.headers[HEADER_RATE_REMAINING] = str(status.remaining)
        response.headers[HEADER_RATE_RESET] = str(status.reset_seconds(self._clock() * 1000))


# =============================================================================
# 429 RESPONSE
# =============================================================================


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_response(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a rejection as HTTP 429 with the standard error body and headers."""
    now_ms = exc.rejected_at if exc.rejected_at is not None else time.time() * 1000
    retry_after = exc.retry_after_seconds(now_ms)
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": exc.message,
                "retryAfter": exc.retry_after_iso,
            },
            "timestamp": _utc_now_iso(),
            "path": request.url.path,
        },
        headers={
            HEADER_RATE_LIMIT: str(exc.limit),
            HEADER_RATE_REMAINING: "0",
            HEADER_RATE_RESET: str(retry_after),
            HEADER_RETRY_AFTER: str(retry_after),
        },
    )


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """FastAPI exception handler for RateLimitExceededError."""
    return rate_limit_response(request, exc)
