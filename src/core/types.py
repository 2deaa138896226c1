"""
Core types shared across modules.

This module provides base enums used across the core library to ensure
consistent error handling.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    This enum is used throughout the sync engine to classify errors and
    determine whether an item is retried on the next pass or the cycle aborts.

    Categories:
        TRANSIENT: Temporary failures that succeed on a later pass
                   (e.g., network timeouts, 429/503 errors, disk hiccups)
        AUTH: Authentication failures, fatal to the current cycle
              (e.g., 401 errors, expired tokens)
        PERMANENT: Failures that won't succeed on retry
                   (e.g., 404, bad destination directory)
        UNKNOWN: Unclassified errors, retried conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
