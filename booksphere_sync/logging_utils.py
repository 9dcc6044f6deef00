"""
Structured JSON logging utilities for cloud environments.

This module provides structured logging that works well with Azure Container Apps,
Log Analytics, and other collectors that expect JSON-formatted logs. The sync
engine passes context (paths, identity, write ids) through ``extra=`` and this
formatter lifts those fields into the JSON object.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message",
    }
)


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as single-line JSON objects with consistent fields:
    - timestamp: ISO 8601 format in UTC
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - Additional context fields from extra dict
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_obj[key] = value
                except (TypeError, ValueError):
                    log_obj[key] = str(value)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str | None = "booksphere_sync",
) -> logging.Logger:
    """
    Configure structured JSON logging.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger,
            pass None for the root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_sync_logger(name: str, **context: Any) -> "SyncLoggerAdapter":
    """
    Get a logger for sync components with consistent naming.

    Args:
        name: Component name (e.g., 'catalog', 'cart')
        **context: Fields stamped on every record (e.g. ``deployment_id``)

    Returns:
        Adapter over the logger named 'booksphere_sync.{name}'
    """
    return SyncLoggerAdapter(logging.getLogger(f"booksphere_sync.{name}"), context)


class SyncLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds sync context to all log messages.

    Services keep one adapter carrying their deployment id and, for the
    cart, the identity it currently follows. Fields passed explicitly via
    ``extra=`` win over the bound context; context fields set to None are
    left out.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Add bound context to the log record."""
        extra = {key: value for key, value in self.extra.items() if value is not None}
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> "SyncLoggerAdapter":
        """Return an adapter on the same logger with ``context`` merged in."""
        return SyncLoggerAdapter(self.logger, {**self.extra, **context})
