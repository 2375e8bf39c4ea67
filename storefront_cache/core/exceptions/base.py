"""
Base Exception Class

Every storefront error carries an ErrorKind:

- INFRASTRUCTURE: the backing store or another dependency misbehaved. The
  cache facade and the rate limit store recover these locally, so one that
  escapes to the HTTP layer means a dependency is down (HTTP 503).
- LOGIC: the caller did something wrong (a value that cannot be serialized,
  a missing service on app.state). These always surface (HTTP 500).

Specialized exceptions live in their themed modules and only pick a kind.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    LOGIC = "logic"


class StorefrontError(Exception):
    """
    Base exception for all storefront cache and rate-limit errors.

    Attributes:
        kind: Whether the error is recoverable infrastructure or a caller bug
        message: Error message
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise CacheCommandError(
            "SETEX rejected by server",
            request_id="abc-123",
            details={"key": "storefront:products:list", "command": "SETEX"}
        )
    """

    kind: ErrorKind = ErrorKind.LOGIC
    status_code: int = 500

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    @property
    def recoverable(self) -> bool:
        """True for infrastructure errors the cache layer is expected to absorb."""
        return self.kind is ErrorKind.INFRASTRUCTURE

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "StorefrontError":
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "StorefrontError":
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(kind={self.kind.value}, message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "StorefrontError":
        """
        Wrap a third-party exception (typically redis-py) keeping its type and text.

        Example:
            >>> try:
            ...     await redis.ping()
            ... except redis.ConnectionError as e:
            ...     raise CacheConnectionError.from_exception(e, host="localhost", port=6379)
        """
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(message or str(exc), request_id=request_id, details=error_details)


class InfrastructureError(StorefrontError):
    """Base for failures of an external dependency."""

    kind = ErrorKind.INFRASTRUCTURE
    status_code = 503


class ConfigurationError(StorefrontError):
    """Raised when configuration is invalid or a service is missing."""
    pass
