#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Builds the storefront cache service: the dual-tier cache facade and the
rate limiter live on `app.state`, app-wide middleware is registered by
`setup_middleware`, and per-route caching / invalidation / rate limiting is
attached with the handler wrappers of `application.api.middleware`.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront_cache.application.api.middleware import setup_middleware
from storefront_cache.application.api.routes.health import router as health_router
from storefront_cache.core.config.constants import HEADER_REQUEST_ID
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.exceptions import RateLimitExceededError, StorefrontError
from storefront_cache.core.logging.logger import get_logger, get_request_id, setup_logging
from storefront_cache.infrastructure.cache.cache_service import CacheService
from storefront_cache.rate_limiting.rate_limiter import RateLimiter, rate_limit_exceeded_handler

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings: Settings = app.state.settings

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting Storefront Cache Service",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    cache: CacheService = getattr(app.state, "cache", None) or CacheService(settings)

    try:
        # Never raises; an unreachable Redis leaves the cache in fallback mode
        await cache.init()
        app.state.cache = cache
        logger.info("Cache initialized", connected=cache.connected)

        if getattr(app.state, "rate_limiter", None) is None:
            app.state.rate_limiter = RateLimiter(cache, settings)
        logger.info("Rate limiter ready")

        logger.info("Application startup complete")

        yield

    finally:
        logger.info("Shutting down application")

        await cache.close()

        logger.info("Application shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================


async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """
    Handle application exceptions that no route dealt with.

    Infrastructure errors that escaped the cache layer become 503 and are
    logged as warnings; logic errors are caller bugs and become 500.
    """
    log = logger.warning if exc.recoverable else logger.error
    log(
        f"Storefront exception: {exc.message}",
        error_type=type(exc).__name__,
        error_kind=exc.kind.value,
        path=request.url.path,
    )

    request_id = exc.request_id or get_request_id()
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={HEADER_REQUEST_ID: request_id or ""},
    )


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Settings | None = None,
    cache: CacheService | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings (defaults to the process-wide instance)
        cache: Pre-built cache service; built in the lifespan when omitted
        rate_limiter: Pre-built rate limiter; built in the lifespan when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Dual-tier caching and rate limiting for the storefront API",
        lifespan=lifespan,
    )

    app.state.settings = settings
    if cache is not None:
        app.state.cache = cache
        app.state.rate_limiter = rate_limiter or RateLimiter(cache, settings)
    elif rate_limiter is not None:
        app.state.rate_limiter = rate_limiter

    setup_middleware(app, settings)

    app.add_exception_handler(RateLimitExceededError, rate_limit_exceeded_handler)
    app.add_exception_handler(StorefrontError, storefront_exception_handler)

    app.include_router(health_router)

    return app


# Create application instance
app = create_app()


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "storefront_cache.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
