"""
Shared kernel for Entity Search.

Provides:
- Unified exception hierarchy
"""

from .exceptions import (
    ConfigurationError,
    EntitySearchError,
    ErrorCategory,
    ErrorSeverity,
    GatewayError,
    InternalServiceError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
    is_caller_facing,
    is_retryable_error,
)

__all__ = [
    "EntitySearchError",
    "ErrorCategory",
    "ErrorSeverity",
    "ConfigurationError",
    "ValidationError",
    "InternalServiceError",
    "GatewayError",
    "RateLimitError",
    "NetworkError",
    "ServiceUnavailableError",
    "ParseError",
    "is_retryable_error",
    "is_caller_facing",
]
