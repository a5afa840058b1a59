"""Logging setup shared by the CLI and applications embedding blobstream."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_SEVERITY_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# LogRecord attributes forwarded to the JSON object when set via ``extra``.
_EXTRA_FIELDS = ("status_code", "status_message", "session_id", "offset")


class JsonLineLogFormatter(logging.Formatter):
    """Emit one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single JSON object string.

        Args:
            record: The log record to format.

        Returns:
            A JSON string representing the log record.
        """
        message = record.getMessage()
        severity = record.levelname.upper()
        if severity not in LOG_SEVERITY_LEVELS:
            severity = "INFO"

        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        event: dict[str, object] = {
            "timestamp": timestamp.replace("+00:00", "Z"),
            "severity": severity,
            "logger": record.name,
            "message": message,
        }
        for field_name in _EXTRA_FIELDS:
            value = getattr(record, field_name, None)
            if value is not None:
                event[field_name] = value
        if record.exc_info:
            event["exception"] = self.formatException(record.exc_info)
        try:
            return json.dumps(event, ensure_ascii=False)
        except (TypeError, ValueError):
            return json.dumps({"severity": "ERROR", "message": message})


def configure_logging(level: int = logging.INFO, json_lines: bool = False) -> None:
    """Configure root logging for blobstream output.

    Args:
        level: Root log level.
        json_lines: Emit one JSON object per record instead of plain text.
    """
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        if json_lines:
            for handler in root.handlers:
                handler.setFormatter(JsonLineLogFormatter())
        return
    handler = logging.StreamHandler()
    if json_lines:
        handler.setFormatter(JsonLineLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=level, handlers=[handler])
