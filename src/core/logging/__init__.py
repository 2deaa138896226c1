"""
Structured logging module.

Provides JSON logging with correlation IDs and context propagation.
"""

from core.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import (
    ArchivingTimedRotatingFileHandler,
    generate_cycle_id,
    get_log_file_path,
    log_startup,
    setup_logging,
)
from core.logging.utilities import format_pass_output, log_exception, log_with_context

__all__ = [
    # Setup
    "setup_logging",
    "generate_cycle_id",
    "get_log_file_path",
    "log_startup",
    "ArchivingTimedRotatingFileHandler",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    # Utilities
    "log_with_context",
    "log_exception",
    "format_pass_output",
]
