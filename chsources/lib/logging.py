"""Logging utilities for the compiler.

Rendered statements go to stdout, so log output is written to stderr.
Provides a structured JSON option for log aggregation.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional

__all__ = [
    "setup_logging",
    "JSONFormatter",
]

# Attributes every LogRecord carries; anything else came from extra=
_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}

# Extra key carrying SourceError.to_dict(), promoted to the top level
ERROR_FIELD = "error"


class JSONFormatter(logging.Formatter):
    """Formatter that outputs log records as one JSON object per line.

    A ``SourceError`` passed as ``extra={"error": err.to_dict()}`` is lifted
    to a top-level ``error`` key so aggregators can index on
    ``error.error_type`` and ``error.entity``. Any other extras are nested
    under ``extra``.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "ERROR",
         "logger": "chsources.__main__", "message": "Rendering failed: ...",
         "source": "__main__:245", "error": {"error_type": "MissingConnectionProfileError", ...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno}",
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_attrs = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        error = extra_attrs.pop(ERROR_FIELD, None)
        if error is not None:
            log_data[ERROR_FIELD] = error
        if extra_attrs:
            log_data["extra"] = extra_attrs

        return json.dumps(log_data, default=str)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure logging for a compiler run.

    Args:
        verbose: Enable debug-level logging
        json_format: Use JSON output format (for log aggregation)
        log_file: Optional file path to write logs to
        stream: Console stream, stderr by default
    """
    level = logging.DEBUG if verbose else logging.INFO

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
