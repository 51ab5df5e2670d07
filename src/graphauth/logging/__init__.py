"""
Structured logging module.

Provides console and JSON logging with session context propagation and
credential redaction.
"""

from graphauth.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
)
from graphauth.logging.formatters import ConsoleFormatter, JSONFormatter, redact
from graphauth.logging.setup import NOISY_LOGGERS, get_logger, setup_logging

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    "NOISY_LOGGERS",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    "redact",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "log_context",
]
