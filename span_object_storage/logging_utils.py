"""
Structured JSON logging for the span object store.

Records are emitted as single-line JSON. Upload and read logs carry the
object target, and failures carry the storage error's details, so one
object's history can be pulled out of the log with a simple filter.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from .exceptions import SpanStorageError

PACKAGE_LOGGER = "span_object_storage"

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


class StructuredJsonFormatter(logging.Formatter):
    """
    Render a record as one JSON object.

    Always present: ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``
    and ``message``. Fields passed through ``extra`` (``target``,
    ``operation``...) are copied to the top level. When the record carries
    a SpanStorageError, its class and details are added under ``error``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        if record.exc_info:
            exc = record.exc_info[1]
            if isinstance(exc, SpanStorageError):
                log_obj["error"] = {"type": type(exc).__name__, "details": exc.details}
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    logger_name: str = PACKAGE_LOGGER,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Send the package's logs to ``stream`` as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger)
        stream: Destination (default: stderr, stdout carries CLI results)

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return logger


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Tag every record with fixed storage context, e.g. ``{"target": 7}``.

    Per-call ``extra`` values win over the adapter's context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs
