"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- FeedSyncError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthError,
    ConfigurationError,
    # Enums
    ErrorCategory,
    # Base classes
    FeedSyncError,
    PermanentError,
    # Transient errors
    ThrottlingError,
    TransientError,
    TransientIOError,
    classify_exception,
    classify_http_status,
    classify_os_error,
    # Classification utilities
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "FeedSyncError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "ConfigurationError",
    # Transient errors
    "TransientIOError",
    "ThrottlingError",
    # Classification utilities
    "classify_http_status",
    "classify_os_error",
    "classify_exception",
    "wrap_exception",
]
