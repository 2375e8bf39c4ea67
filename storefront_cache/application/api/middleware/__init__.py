"""
Middleware Package - Educational Documentation
===============================================

WHAT IS THIS PACKAGE?
---------------------
Two kinds of request processing live here:

1. ASGI middleware (app-wide, every request):
   - error_handler: Catch-all 500 rendering
   - request_context: X-Request-ID propagation into logs
   - rate_limit: GENERAL route group rate limit

2. Route handler wrappers (per route, see route_wrappers.py):
   - cache_response / cache_products / ...: cache-aside for GET endpoints
   - invalidate_cache / invalidate_product_cache / ...: pattern invalidation
   - rate_limit / rate_limit_auth / ...: stricter route group policies

MIDDLEWARE ORDERING:
--------------------
Starlette executes middleware in REVERSE order of registration (last added
= first executed). `setup_middleware` registers them so that a request flows:

    ErrorHandling -> CORS -> RequestContext -> RateLimit -> route

so that rate limit rejections carry CORS headers and a request ID, and any
unhandled error is rendered by the error handler.

USAGE EXAMPLE:
--------------
    from fastapi import FastAPI
    from storefront_cache.application.api.middleware import setup_middleware

    app = FastAPI()
    setup_middleware(app, settings)
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront_cache.core.config.constants import HEADER_REQUEST_ID
from storefront_cache.core.config.settings import Settings, get_settings
from storefront_cache.core.logging.logger import get_logger

from .error_handler import ErrorHandlingMiddleware, add_error_handling_middleware
from .rate_limit import RateLimitMiddleware, add_rate_limit_middleware
from .request_context import RequestContextMiddleware, add_request_context_middleware
from .route_wrappers import (
    cache_categories,
    cache_product_detail,
    cache_products,
    cache_response,
    cache_search,
    guarded_route,
    invalidate_cache,
    invalidate_category_cache,
    invalidate_order_cache,
    invalidate_product_cache,
    invalidate_user_cache,
    rate_limit,
    rate_limit_admin,
    rate_limit_api,
    rate_limit_auth,
    rate_limit_general,
    rate_limit_search,
    rate_limit_upload,
)

logger = get_logger(__name__)


def setup_middleware(app: FastAPI, settings: Settings | None = None) -> None:
    """
    Register all app-wide middleware in the correct order.

    Args:
        app: FastAPI application instance
        settings: Settings (defaults to the process-wide instance)
    """
    settings = settings or get_settings()

    logger.info("Registering middleware components...")

    # Registered innermost first.

    # 4. General rate limit, closest to the routes
    add_rate_limit_middleware(app)

    # 3. Request ID for every log line, including rate limit rejections
    add_request_context_middleware(app)

    # 2. CORS headers on every response, errors included
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID],
    )

    # 1. Error handling, outermost; tracebacks only in development
    add_error_handling_middleware(
        app, include_traceback=(settings.app.ENVIRONMENT == "development")
    )

    logger.info("All middleware components registered successfully")


__all__ = [
    "setup_middleware",
    "ErrorHandlingMiddleware",
    "RateLimitMiddleware",
    "RequestContextMiddleware",
    "add_error_handling_middleware",
    "add_rate_limit_middleware",
    "add_request_context_middleware",
    "guarded_route",
    "cache_response",
    "invalidate_cache",
    "rate_limit",
    "cache_products",
    "cache_product_detail",
    "cache_categories",
    "cache_search",
    "invalidate_product_cache",
    "invalidate_category_cache",
    "invalidate_user_cache",
    "invalidate_order_cache",
    "rate_limit_general",
    "rate_limit_auth",
    "rate_limit_api",
    "rate_limit_upload",
    "rate_limit_search",
    "rate_limit_admin",
]
