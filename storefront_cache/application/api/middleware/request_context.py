"""
Request Context Middleware

Binds a request ID to the logging context for the lifetime of each request
and echoes it on the response.

STAGE-1.1: Request ID context initialization
"""

import uuid
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from storefront_cache.core.config.constants import HEADER_REQUEST_ID
from storefront_cache.core.logging.logger import clear_request_id, set_request_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's X-Request-ID or generate one."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            clear_request_id()


def add_request_context_middleware(app: FastAPI) -> None:
    app.add_middleware(RequestContextMiddleware)
