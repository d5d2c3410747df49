"""Structured logging configuration for partwriter.

Upload log records carry ``bucket``, ``key``, ``upload_id``, ``part_number``
and ``size`` extras. Both formatters surface them: JSON as top-level fields,
text as a trailing ``[upload_id=... part_number=...]`` block.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Loggers under this name are the writer and its storage sessions
UPLOAD_LOGGER = "partwriter"

# Extra record attributes copied into log entries
_EXTRA_FIELDS = ("bucket", "key", "upload_id", "part_number", "size")


def _upload_extras(record: logging.LogRecord) -> dict:
    extras = {}
    for key in _EXTRA_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            extras[key] = val
    return extras


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus any upload extras.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_upload_extras(record))
        return json.dumps(entry, default=str)


class UploadTextFormatter(logging.Formatter):
    """Human-readable formatter that appends upload extras to the message."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        extras = _upload_extras(record)
        if not extras:
            return line
        context = " ".join(f"{k}={v}" for k, v in extras.items())
        return f"{line} [{context}]"


def configure_logging(level: str = "INFO", fmt: str = "text", upload_level: str = "") -> None:
    """Configure root logging with the specified level and format.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Format type, 'text' for human-readable or 'json' for structured.
        upload_level: Level for the ``partwriter`` logger tree only, so part
            traffic can be traced at DEBUG while libraries such as botocore
            stay at ``level``. Empty means follow ``level``.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    # Levels are enforced on the loggers; the handler passes everything through
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(UploadTextFormatter())
    root.addHandler(handler)

    upload_logger = logging.getLogger(UPLOAD_LOGGER)
    if upload_level:
        upload_logger.setLevel(getattr(logging, upload_level.upper(), numeric_level))
    else:
        upload_logger.setLevel(logging.NOTSET)
