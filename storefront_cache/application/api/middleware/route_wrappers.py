"""
Route Handler Wrappers - Educational Documentation
==================================================

WHAT IS A HANDLER WRAPPER?
--------------------------
FastAPI turns every endpoint into an ASGI handler of the shape:

    async def handler(request: Request) -> Response

A handler wrapper takes such a handler and returns a new one with extra
behaviour around it:

    HandlerWrapper = Callable[[Handler], Handler]

Unlike app-wide ASGI middleware, wrappers are attached PER ROUTE, and they
see the fully rendered Response of the endpoint (status code and JSON body).
That is exactly what cache-aside and invalidation need.

HOW ARE WRAPPERS ATTACHED?
--------------------------
`guarded_route(*wrappers)` builds an `APIRoute` subclass whose
`get_route_handler()` returns the wrapped handler. The first wrapper listed
is the outermost one:

    router = APIRouter(route_class=guarded_route(rate_limit_search, cache_search))

    @router.get("/search")
    async def search(q: str): ...

or for a single route:

    router.add_api_route(
        "/products",
        create_product,
        methods=["POST"],
        route_class_override=guarded_route(rate_limit_api, invalidate_product_cache),
    )

Exceptions raised by a wrapper (RateLimitExceededError) are handled by the
application's exception handlers, exactly like exceptions from the endpoint.

WRAPPERS IN THIS MODULE:
------------------------
1. cache_response(prefix, ttl): cache-aside for GET endpoints (X-Cache HIT/MISS)
2. invalidate_cache(patterns): pattern delete after successful mutations
3. rate_limit(group): route group rate limit policy

FAILURE SEMANTICS:
------------------
Cache wrappers never fail a request. Any cache error is logged and the
endpoint runs as if no wrapper were present. Cache writes and invalidations
run as detached tasks, so they never delay the response either.
"""

import base64
import functools
from collections.abc import Awaitable, Callable, Iterable

import orjson
from fastapi import Request, Response
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront_cache.application.api.dependencies import cache_from_app, rate_limiter_from_app
from storefront_cache.core.config.constants import (
    CACHE_HIT,
    CACHE_INVALIDATION_PATTERNS,
    CACHE_MISS,
    HEADER_CACHE,
    HEADER_CACHE_CONTROL,
    HEADER_ETAG,
    CacheDuration,
    RouteGroup,
)
from storefront_cache.core.logging import get_logger
from storefront_cache.infrastructure.cache.cache_service import CacheService
from storefront_cache.rate_limiting.rate_limiter import RateLimitPolicy, get_user_id

logger = get_logger(__name__)

Handler = Callable[[Request], Awaitable[Response]]
HandlerWrapper = Callable[[Handler], Handler]
KeyGenerator = Callable[[Request], str]
SkipCache = Callable[[Request], bool]


# ============================================================================
# ROUTE CLASS COMPOSITION
# ============================================================================


def guarded_route(*wrappers: HandlerWrapper) -> type[APIRoute]:
    """
    Build an APIRoute subclass that applies `wrappers` to its handler.

    The first wrapper is the outermost: for `guarded_route(a, b)` a request
    flows a -> b -> endpoint.
    """

    class GuardedRoute(APIRoute):
        def get_route_handler(self) -> Handler:
            handler = super().get_route_handler()
            for wrapper in reversed(wrappers):
                handler = wrapper(handler)
            return handler

    names = ", ".join(getattr(w, "__name__", type(w).__name__) for w in wrappers)
    GuardedRoute.__qualname__ = f"GuardedRoute[{names}]"
    return GuardedRoute


# ============================================================================
# CACHE-ASIDE
# ============================================================================


def _query_string(request: Request) -> str:
    params = request.query_params
    parts = [f"{name}={','.join(params.getlist(name))}" for name in sorted(set(params.keys()))]
    return "&".join(parts)


def default_cache_key(cache: CacheService, prefix: str, request: Request) -> str:
    """
    `<keyPrefix>:<prefix>:<path>:<user>:<query>`

    The path has "/" replaced by "_", the user is the authenticated user id or
    "anonymous", and query parameters are sorted by name (repeated parameters
    joined with ",").
    """
    return cache.generate_key(
        prefix,
        request.url.path.replace("/", "_"),
        get_user_id(request) or "anonymous",
        _query_string(request) or "no-query",
    )


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.startswith("application/json") and isinstance(
        getattr(response, "body", None), bytes
    )


def _hit_response(data, ttl: int) -> Response:
    body = orjson.dumps(data)
    etag = base64.b64encode(body).decode("ascii")
    return Response(
        content=body,
        media_type="application/json",
        headers={
            HEADER_CACHE: CACHE_HIT,
            HEADER_CACHE_CONTROL: f"public, max-age={ttl}",
            HEADER_ETAG: f'"{etag}"',
        },
    )


def cache_response(
    prefix: str,
    ttl: int = CacheDuration.PRODUCTS_LIST,
    skip_cache: SkipCache | None = None,
    key_generator: KeyGenerator | None = None,
) -> HandlerWrapper:
    """
    Cache-aside wrapper for GET endpoints.

    STAGE-HTTP.1: Cache lookup
    STAGE-HTTP.2: Write-through of successful JSON responses

    Args:
        prefix: Logical key prefix (e.g. "products")
        ttl: Entry lifetime and Cache-Control max-age in seconds
        skip_cache: Predicate that bypasses the cache for a request
        key_generator: Custom cache key builder
    """

    def wrapper(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def cached_handler(request: Request) -> Response:
            if request.method != "GET":
                return await handler(request)

            cache = getattr(request.app.state, "cache", None)
            if cache is None or not cache.enabled:
                return await handler(request)

            bypass = False
            key = cached = None
            try:
                bypass = skip_cache is not None and skip_cache(request)
                if not bypass:
                    key = key_generator(request) if key_generator else default_cache_key(cache, prefix, request)
                    cached = await cache.get(key)
            except Exception as e:
                logger.warning(
                    "Cache lookup failed, serving uncached",
                    stage="HTTP.1",
                    path=request.url.path,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                bypass = True

            # endpoint is called exactly once, outside the lookup guard
            if bypass:
                return await handler(request)

            if cached is not None:
                logger.debug("HTTP cache hit", stage="HTTP.1", key=key)
                return _hit_response(cached, ttl)

            response = await handler(request)

            try:
                if 200 <= response.status_code < 300 and _is_json(response):
                    data = orjson.loads(response.body)
                    cache.spawn(cache.set(key, data, ttl), f"http-cache-write:{key}")
                response.headers[HEADER_CACHE] = CACHE_MISS
                response.headers[HEADER_CACHE_CONTROL] = f"public, max-age={ttl}"
            except Exception as e:
                logger.warning(
                    "Failed to cache response",
                    stage="HTTP.2",
                    key=key,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            return response

        return cached_handler

    wrapper.__name__ = f"cache_response({prefix})"
    return wrapper


# ============================================================================
# INVALIDATION
# ============================================================================


def invalidate_cache(patterns: Iterable[str]) -> HandlerWrapper:
    """
    Delete every key matching `patterns` after a 2xx response.

    Deletes run detached; a failed or slow invalidation never affects the
    mutating request.
    """
    patterns = tuple(patterns)

    def wrapper(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def invalidating_handler(request: Request) -> Response:
            response = await handler(request)
            if not 200 <= response.status_code < 300:
                return response

            try:
                cache = cache_from_app(request.app)
                for pattern in patterns:
                    cache.spawn(cache.del_pattern(pattern), f"invalidate:{pattern}")
            except Exception as e:
                logger.warning(
                    "Failed to invalidate cache",
                    stage="HTTP.3",
                    patterns=list(patterns),
                    error=str(e),
                    error_type=type(e).__name__,
                )
            return response

        return invalidating_handler

    wrapper.__name__ = f"invalidate_cache({', '.join(patterns)})"
    return wrapper


# ============================================================================
# RATE LIMITING
# ============================================================================


def rate_limit(policy: RouteGroup | RateLimitPolicy) -> HandlerWrapper:
    """
    Apply a route group policy (or an explicit policy) to a route.

    Raises RateLimitExceededError from the handler, which the application
    renders as HTTP 429.
    """

    def wrapper(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def limited_handler(request: Request) -> Response:
            limiter = rate_limiter_from_app(request.app)
            resolved = limiter.policy(policy) if isinstance(policy, RouteGroup) else policy
            status = await limiter.hit(request, resolved)
            if status is None:
                return await handler(request)

            try:
                response = await handler(request)
            except StarletteHTTPException as exc:
                await limiter.release(request, resolved, exc.status_code)
                raise

            await limiter.release(request, resolved, response.status_code)
            limiter.apply_headers(response, status)
            return response

        return limited_handler

    name = policy.value if isinstance(policy, RouteGroup) else policy.name
    wrapper.__name__ = f"rate_limit({name})"
    return wrapper


# ============================================================================
# PRESETS
# ============================================================================

cache_products = cache_response("products", CacheDuration.PRODUCTS_LIST)
cache_product_detail = cache_response("product", CacheDuration.PRODUCT_DETAIL)
cache_categories = cache_response("categories", CacheDuration.CATEGORIES)
cache_search = cache_response("search", CacheDuration.SEARCH_RESULTS)

invalidate_product_cache = invalidate_cache(CACHE_INVALIDATION_PATTERNS["products"])
invalidate_category_cache = invalidate_cache(CACHE_INVALIDATION_PATTERNS["categories"])
invalidate_user_cache = invalidate_cache(CACHE_INVALIDATION_PATTERNS["users"])
invalidate_order_cache = invalidate_cache(CACHE_INVALIDATION_PATTERNS["orders"])

rate_limit_general = rate_limit(RouteGroup.GENERAL)
rate_limit_auth = rate_limit(RouteGroup.AUTH)
rate_limit_api = rate_limit(RouteGroup.API)
rate_limit_upload = rate_limit(RouteGroup.UPLOAD)
rate_limit_search = rate_limit(RouteGroup.SEARCH)
rate_limit_admin = rate_limit(RouteGroup.ADMIN)
