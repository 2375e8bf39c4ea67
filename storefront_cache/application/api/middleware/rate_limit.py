"""
Rate Limit Middleware
=====================

Applies the GENERAL route group policy to every request. Stricter groups
(auth, upload, search, ...) are attached per route through the handler
wrappers in `route_wrappers.py`.

Headers set by a stricter route policy are left in place.

Rejections are rendered here instead of by the application exception
handler: exceptions raised inside a BaseHTTPMiddleware never reach FastAPI's
exception handlers.

STAGE-RATE.1: General rate limit check
"""

from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront_cache.core.config.constants import HEADER_RATE_LIMIT, RouteGroup
from storefront_cache.core.exceptions import RateLimitExceededError
from storefront_cache.rate_limiting.rate_limiter import rate_limit_response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Count every request against one route group policy.

    Args:
        app: The ASGI application
        group: Route group whose policy is applied (default: general)
    """

    def __init__(self, app, group: RouteGroup = RouteGroup.GENERAL):
        super().__init__(app)
        self.group = group

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        limiter = getattr(request.app.state, "rate_limiter", None)
        if limiter is None:
            return await call_next(request)

        policy = limiter.policy(self.group)
        try:
            status = await limiter.hit(request, policy)
        except RateLimitExceededError as exc:
            return rate_limit_response(request, exc)

        response = await call_next(request)

        if status is not None:
            await limiter.release(request, policy, response.status_code)
            if HEADER_RATE_LIMIT not in response.headers:
                limiter.apply_headers(response, status)
        return response


def add_rate_limit_middleware(app: FastAPI, group: RouteGroup = RouteGroup.GENERAL) -> None:
    app.add_middleware(RateLimitMiddleware, group=group)
