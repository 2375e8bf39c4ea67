"""
FastAPI Dependency Injection Module
===================================

WHAT LIVES HERE?
----------------
Accessors for the application-level services built in the lifespan manager
and stored on `app.state`:

- `app.state.cache`: the CacheService (dual-tier cache facade)
- `app.state.rate_limiter`: the RateLimiter (route group policies)

WHY app.state AND NOT MODULE GLOBALS?
-------------------------------------
Each application instance owns its own services. Tests build an app, put a
CacheService wired to an in-memory fake on `app.state`, and never touch a
process-wide singleton.

The same accessors are used by route dependencies (`CacheDep`) and by the
handler wrappers in `middleware/route_wrappers.py`, which receive the raw
Request instead of going through FastAPI's DI.

Example:
    @router.get("/products/{product_id}")
    async def product_detail(product_id: int, cache: CacheDep):
        return await cache.cached(
            cache.generate_key("product", product_id),
            lambda: load_product(product_id),
            ttl=CacheDuration.PRODUCT_DETAIL,
        )
"""

from typing import Annotated

from fastapi import Depends, Request
from starlette.applications import Starlette

from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import ConfigurationError
from storefront_cache.infrastructure.cache.cache_service import CacheService
from storefront_cache.rate_limiting.rate_limiter import RateLimiter


def cache_from_app(app: Starlette) -> CacheService:
    cache = getattr(app.state, "cache", None)
    if cache is None:
        raise ConfigurationError(
            "CacheService not initialized in app.state"
        ).with_suggestion("Create the app with create_app() or set app.state.cache in tests")
    return cache


def rate_limiter_from_app(app: Starlette) -> RateLimiter:
    limiter = getattr(app.state, "rate_limiter", None)
    if limiter is None:
        raise ConfigurationError(
            "RateLimiter not initialized in app.state"
        ).with_suggestion("Create the app with create_app() or set app.state.rate_limiter in tests")
    return limiter


def get_cache(request: Request) -> CacheService:
    """
    Retrieve the CacheService from application state.

    Raises:
        ConfigurationError: If the lifespan startup did not run
    """
    return cache_from_app(request.app)


def get_rate_limiter(request: Request) -> RateLimiter:
    """Retrieve the RateLimiter from application state."""
    return rate_limiter_from_app(request.app)


# ============================================================================
# TYPE ALIASES FOR CLEANER ROUTE SIGNATURES
# ============================================================================

CacheDep = Annotated[CacheService, Depends(get_cache)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
