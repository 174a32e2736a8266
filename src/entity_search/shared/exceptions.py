"""
Unified Exception Hierarchy for Entity Search.

Exception Hierarchy:
    EntitySearchError (base)
    ├── ConfigurationError      registry build time, fail fast
    ├── ValidationError         caller input, machine-readable code + field
    ├── InternalServiceError    boundary rewrap, original cause kept
    ├── GatewayError            backend transport
    │   ├── RateLimitError
    │   ├── NetworkError
    │   └── ServiceUnavailableError
    └── ParseError              undecodable backend payload

Callers only ever see ConfigurationError, ValidationError or
InternalServiceError: the service boundary rewraps everything else.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    WARNING = auto()  # Caller can fix the request
    ERROR = auto()  # Failed, may succeed later
    CRITICAL = auto()  # Cannot continue
    TRANSIENT = auto()  # Temporary, retried automatically


class ErrorCategory(Enum):
    """Categories for error classification."""

    CONFIGURATION = "config"
    VALIDATION = "validation"
    INTERNAL = "internal"
    GATEWAY = "gateway"
    DATA = "data"


class EntitySearchError(Exception):
    """
    Base exception for all Entity Search errors.

    Provides:
    - Machine-readable error code and details
    - Severity classification
    - Retry guidance for the gateway
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "ERROR",
        details: dict[str, Any] | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.severity = severity
        self.category = category
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "code": self.code,
            "category": self.category.value,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(EntitySearchError):
    """Raised when a type registry definition is missing or contradictory."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "INVALID_CONFIGURATION",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details=details,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
        )


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(EntitySearchError):
    """Raised when caller input cannot be resolved against the registry."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "VALIDATION_ERROR",
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(
            message,
            code=code,
            details=details,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
        )
        self.field = field


# =============================================================================
# Internal Service Errors
# =============================================================================


class InternalServiceError(EntitySearchError):
    """
    Raised at the service boundary for any unexpected failure.

    The original exception is kept on ``cause`` (and ``__cause__``) for
    diagnostics but never serialized back to the caller.
    """

    def __init__(
        self,
        message: str = "Internal Service Error",
        *,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            code="INTERNAL_SERVICE_ERROR",
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.INTERNAL,
        )
        self.cause = cause


# =============================================================================
# Gateway Errors
# =============================================================================


class GatewayError(EntitySearchError):
    """Base class for search backend errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "GATEWAY_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details=details,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.GATEWAY,
            retryable=retryable,
        )


class RateLimitError(GatewayError):
    """Raised when the backend answers HTTP 429."""

    def __init__(
        self,
        message: str = "Search backend rate limit exceeded",
        *,
        retry_after: float = 1.0,
    ) -> None:
        super().__init__(message, code="RATE_LIMITED", details={"retry_after": retry_after}, retryable=True)
        self.retry_after = retry_after
        self.severity = ErrorSeverity.TRANSIENT


class NetworkError(GatewayError):
    """Raised for connectivity issues and timeouts."""

    def __init__(self, message: str = "Network connection failed") -> None:
        super().__init__(message, code="NETWORK_ERROR", retryable=True)


class ServiceUnavailableError(GatewayError):
    """Raised when the backend answers with a 5xx status."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message,
            code="SERVICE_UNAVAILABLE",
            details={"status_code": status_code} if status_code else None,
            retryable=True,
        )
        self.severity = ErrorSeverity.TRANSIENT


class ParseError(EntitySearchError):
    """Raised when a backend payload cannot be decoded."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        full_msg = f"Parse error: {message}"
        if source:
            full_msg = f"Parse error ({source}): {message}"
        super().__init__(full_msg, code="PARSE_ERROR", category=ErrorCategory.DATA)


def is_retryable_error(error: BaseException) -> bool:
    """Check if a gateway call should be retried."""
    if isinstance(error, EntitySearchError):
        return error.retryable
    return False


def is_caller_facing(error: BaseException) -> bool:
    """Errors that cross the service boundary unchanged."""
    return isinstance(error, ValidationError | ConfigurationError | InternalServiceError)
