"""Custom error types and error classification utilities."""

from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime, timezone


class ErrorCategory(Enum):
    """Categories of errors for better handling."""
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    UPSTREAM = "upstream"
    CIRCUIT_OPEN = "circuit_open"
    STREAM = "stream"
    FORMAT = "format"
    STORAGE = "storage"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class EdgeError(Exception):
    """Base exception for every error raised by the request pipeline."""

    error_type = "APIError"

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.status_code = status_code
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to the response body sent to clients."""
        body: Dict[str, Any] = {
            "error": self.message,
            "type": self.error_type,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(EdgeError):
    """Input validation errors. Never retried."""

    error_type = "ValidationError"

    def __init__(self, message: str, field: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            status_code=400,
            details=details,
            recoverable=False,
        )
        self.field = field


class APIError(EdgeError):
    """Errors reported to the client with an HTTP status."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        category: ErrorCategory = ErrorCategory.UPSTREAM,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(
            message=message,
            category=category,
            status_code=status_code,
            details=details,
            recoverable=recoverable,
        )


class RateLimitError(APIError):
    """Raised when the per-minute request budget is spent."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int = 60):
        super().__init__(
            message=message,
            status_code=429,
            category=ErrorCategory.RATE_LIMIT,
            details={"retry_after": retry_after},
            recoverable=True,
        )
        self.retry_after = retry_after


class UpstreamError(APIError):
    """A failed call to the inference provider.

    ``upstream_status`` is ``None`` for network failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        model: Optional[str] = None,
        timeout: bool = False,
    ):
        details: Dict[str, Any] = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        if model:
            details["model"] = model

        if upstream_status is not None:
            status_code = upstream_status
        else:
            status_code = 504 if timeout else 502

        super().__init__(
            message=message,
            status_code=status_code,
            category=ErrorCategory.UPSTREAM,
            details=details,
        )
        self.upstream_status = upstream_status
        self.model = model
        self.timeout = timeout
        self.recoverable = self.transient

    @property
    def transient(self) -> bool:
        """Network errors, timeouts, 429 and 5xx are worth retrying."""
        if self.upstream_status is None:
            return True
        return self.upstream_status == 429 or self.upstream_status >= 500

    @property
    def is_client_error(self) -> bool:
        """A 4xx answer other than 429."""
        status = self.upstream_status
        return status is not None and 400 <= status < 500 and status != 429


class CircuitOpenError(APIError):
    """Raised without touching the provider while the breaker is open."""

    def __init__(self, retry_after: float):
        seconds = max(1, int(round(retry_after)))
        super().__init__(
            message=f"Service temporarily unavailable. Retry after {seconds} seconds.",
            status_code=503,
            category=ErrorCategory.CIRCUIT_OPEN,
            details={"retry_after": seconds},
            recoverable=True,
        )
        self.retry_after = seconds


class StreamInterruptedError(APIError):
    """The provider stream failed after it was handed to the consumer."""

    def __init__(self, message: str = "Stream interrupted", partial_text: str = ""):
        super().__init__(
            message=message,
            status_code=502,
            category=ErrorCategory.STREAM,
        )
        self.partial_text = partial_text


class UpstreamFormatError(APIError):
    """The provider answered with a body we cannot interpret. Not retried."""

    def __init__(self, message: str = "Invalid response format from Cloudflare AI"):
        super().__init__(
            message=message,
            status_code=502,
            category=ErrorCategory.FORMAT,
        )


class CacheTierError(EdgeError):
    """Durable tier failure. Always caught and logged, never surfaced."""

    def __init__(self, message: str, operation: Optional[str] = None):
        details = {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            category=ErrorCategory.STORAGE,
            details=details,
            recoverable=True,
        )


class ConfigurationError(EdgeError):
    """Missing or invalid startup configuration."""

    def __init__(self, message: str):
        super().__init__(message=message, category=ErrorCategory.CONFIGURATION)


def is_retryable(error: BaseException) -> bool:
    """Whether a dispatch attempt that raised ``error`` may be repeated."""
    if isinstance(error, (ValidationError, UpstreamFormatError, CircuitOpenError)):
        return False
    if isinstance(error, UpstreamError):
        return error.transient
    return False
