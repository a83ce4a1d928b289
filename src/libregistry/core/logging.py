# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Structured logging for the library registry.

Install, upgrade and removal steps are logged as events: the message is the
event name (e.g. "library.install.committed") and the details travel as
record attributes. Every formatted line names the library it is about.

JSON output:
    {"timestamp": ..., "level": "INFO", "logger": "libregistry.services.installer",
     "event": "library.install.committed", "library": "H5P.Example-1.0.2",
     "message": "library.install.committed", "fields": {"operation": "install", ...}}
"""

import logging
import json
import sys
from datetime import datetime, UTC
from typing import Any, Dict, Optional
from pathlib import Path


EVENT_FIELD = "event"
LIBRARY_FIELD = "library"

LOG_FORMATS = ("json", "text")

# Attributes every LogRecord carries; anything else arrived through extra=
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Extra fields of a record, without the event and library keys."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and key not in (EVENT_FIELD, LIBRARY_FIELD)
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    "event" and "library" are always present (null for plain log lines);
    remaining extra fields are nested under "fields".
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, EVENT_FIELD, None),
            "library": getattr(record, LIBRARY_FIELD, None),
            "message": record.getMessage(),
        }

        fields = record_fields(record)
        if fields:
            entry["fields"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable lines:
        2025-01-01 12:00:00 - libregistry.services.installer - INFO - library.install.committed [H5P.Example-1.0.2] files=3
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)

        library = getattr(record, LIBRARY_FIELD, None)
        if library:
            line = f"{line} [{library}]"

        fields = record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return line


def get_logger(
    name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Get a logger writing to stdout (and optionally a file).

    Args:
        name: Logger name (usually __name__ or "libregistry")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" or "text"
        log_file: Optional log file path

    Returns:
        Configured logger instance

    Raises:
        ValueError: On an unknown log format
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format '{log_format}', expected one of {', '.join(LOG_FORMATS)}")

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Reconfiguring replaces the handlers instead of stacking them
    logger.handlers = []

    formatter = JSONFormatter() if log_format == "json" else TextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """Configure the package root logger ("libregistry") once at startup."""
    return get_logger("libregistry", log_level=log_level, log_format=log_format)


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "INFO",
    library: Optional[str] = None,
    **fields: Any
) -> None:
    """
    Log an install state transition.

    Args:
        logger: Logger instance
        event: Event name, also used as the message
        level: Log level name
        library: Ubername the event is about
        **fields: Additional fields; names clashing with LogRecord
            attributes are stored with a "field_" prefix
    """
    extra = {EVENT_FIELD: event, LIBRARY_FIELD: library}
    for key, value in fields.items():
        extra[f"field_{key}" if key in _RECORD_ATTRS else key] = value

    logger.log(getattr(logging, level.upper()), event, extra=extra)
