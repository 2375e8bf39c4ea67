"""
Error Handling Middleware
=========================

Last line of defense for exceptions that no route handler or FastAPI
exception handler dealt with. Every such error is logged with its request
context and rendered as:

    HTTP 500
    {"success": false,
     "error": {"code": "INTERNAL_ERROR", "message": "..."},
     "timestamp": "...", "path": "/..."}

Internal details (exception text, traceback) are only included when
`include_traceback` is set, which the app factory does in development.
"""

import traceback
from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront_cache.core.logging.logger import get_logger

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing your request"


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for centralized error handling and formatting.

    Args:
        app: The ASGI application
        include_traceback: Whether to include exception details in responses
    """

    def __init__(self, app, include_traceback: bool = False):
        super().__init__(app)
        self.include_traceback = include_traceback

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            method = request.method
            path = request.url.path
            error_type = type(e).__name__

            logger.error(
                f"Unhandled exception in request: {method} {path}",
                method=method,
                path=path,
                error_type=error_type,
                error_message=str(e),
                exc_info=True,
            )

            error = {"code": "INTERNAL_ERROR", "message": GENERIC_ERROR_MESSAGE}
            if self.include_traceback:
                error["detail"] = str(e)
                error["error_type"] = error_type
                error["traceback"] = traceback.format_exc()

            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": error,
                    "timestamp": datetime.now(timezone.utc)
                    .isoformat(timespec="milliseconds")
                    .replace("+00:00", "Z"),
                    "path": path,
                },
            )


def add_error_handling_middleware(app: FastAPI, include_traceback: bool = False) -> None:
    app.add_middleware(ErrorHandlingMiddleware, include_traceback=include_traceback)
