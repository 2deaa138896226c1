"""
Core library: Reusable, infrastructure-agnostic components.

This package holds the pieces of the sync engine that know nothing about the
feed being mirrored.

Modules:
    resilience  - Retry with backoff
    logging     - Structured JSON logging with correlation IDs
    errors      - Error classification and exception hierarchy
    download    - Async HTTP byte transport and atomic file publishing

Design Principles:
    - No dependencies on the remote API's data model
    - All modules are independently testable
    - Async-first where applicable
    - Type hints throughout
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
