"""
Centralized logging configuration for the storefront cart.

Usage:
    from storefront.logging import get_logger, log_event
    logger = get_logger(__name__)

    logger.info("Operation completed")
    log_event(logger, logging.WARNING, "quantity_clamped", line_id=line.id, quantity=20)
"""

import logging
import os
import sys
from functools import cache
from typing import Any

# Default format for logs
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"


def _get_log_level() -> int:
    """Get log level from environment or default to INFO."""
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _configure_root_logger() -> None:
    """Configure root logger with appropriate handlers."""
    root = logging.getLogger()

    # Only configure if no handlers exist
    if root.handlers:
        return

    root.setLevel(_get_log_level())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    # Use simple format in production (Vercel), detailed locally
    is_production = os.environ.get("VERCEL") == "1"
    formatter = logging.Formatter(LOG_FORMAT_SIMPLE if is_production else LOG_FORMAT)
    handler.setFormatter(formatter)

    root.addHandler(handler)

    # Every sync round trip would otherwise log a request line
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# Configure once on module import
_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """
    Escape characters that could be used for log injection attacks (CWE-117).

    Coupon codes, server error bodies and variant names reach the logs
    verbatim, so newlines and control characters are neutralized first.

    Args:
        value: Raw string to escape

    Returns:
        The string with \\n, \\r and \\t escaped and NUL bytes removed
    """
    # One log record must stay one line
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """
    Sanitize ID for safe logging (truncate to first 8 chars to avoid logging user-controlled data).

    Also escapes log injection characters (CWE-117).

    Args:
        id_value: ID value to sanitize (can be None)

    Returns:
        Sanitized ID string (first 8 chars) or "N/A" if None
    """
    if not id_value:
        return "N/A"
    # Line ids and user ids may arrive from the server or the session
    safe_value = _escape_log_injection(str(id_value))
    return safe_value[:8] if len(safe_value) > 8 else safe_value


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """
    Sanitize a free-form string for logging, e.g. an HTTP error body.

    Escapes log injection characters (CWE-117) and truncates to
    `max_length` so a large server response cannot flood the log.

    Args:
        value: String to sanitize (can be None)
        max_length: Characters to keep before appending "..." (default: 50)

    Returns:
        Sanitized string, or "N/A" for None or empty input
    """
    if not value:
        return "N/A"
    # The length limit applies to the escaped text
    safe_value = _escape_log_injection(str(value))
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """
    Emit a structured diagnostic event.

    The message reads "<event> key=value ..." for humans; the event name and
    fields are also attached to the record (``record.event``,
    ``record.fields``) so handlers and tests can match on them.

    Args:
        logger: Logger to emit on
        level: logging level (logging.INFO, logging.WARNING, ...)
        event: Stable event name, e.g. "quantity_reset"
        **fields: Extra context; string values are escaped
    """
    safe_fields = {
        key: _escape_log_injection(value) if isinstance(value, str) else value
        for key, value in fields.items()
    }
    rendered = " ".join(f"{key}={value}" for key, value in safe_fields.items())
    message = f"{event} {rendered}" if rendered else event
    logger.log(level, message, extra={"event": event, "fields": safe_fields})


# Convenience exports
__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "get_logger",
    "log_event",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
