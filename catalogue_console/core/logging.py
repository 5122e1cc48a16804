"""Shared logging configuration.

Provides JSON-formatted logging for the console service, its CLI and the
client SDK.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Extra attributes copied from log records into the JSON payload
EXTRA_FIELDS = (
    "request_id", "route", "method", "status", "duration_ms",
    "principal", "action", "resource", "details",
)


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in EXTRA_FIELDS:
            if hasattr(record, k):
                payload[k] = getattr(record, k)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(
    log_file: str | None = None,
    log_level: str | None = None,
):
    """Configure logging with JSON formatter.

    Args:
        log_file: Optional path to an append-mode log file. Defaults to
            CONSOLE_LOG_FILE; no file handler when neither is set.
        log_level: Log level. Defaults to CONSOLE_LOG_LEVEL or 'INFO'.
    """
    from catalogue_console.config import LOG_FILE, LOG_LEVEL

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JsonFormatter())
    handlers: list[logging.Handler] = [console_handler]

    log_file = log_file or LOG_FILE
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    root = logging.getLogger()
    log_level = (log_level or LOG_LEVEL).upper()
    root.setLevel(getattr(logging, log_level, logging.INFO))
    root.handlers = handlers
