"""Structured logging setup.

Service modules log through ``logging.getLogger(__name__)`` and attach job
context with ``extra={"job_id": ..., "company_id": ...}``. This module
installs a JSON formatter on the root logger so those fields survive into
the log stream.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

_LOGGING_CONFIGURED = False

# Extra attributes promoted to top-level JSON keys when present on a record
STRUCTURED_FIELDS = (
    "job_id",
    "company_id",
    "correlation_id",
    "provider",
    "model",
    "step",
    "latency_ms",
    "error_type",
)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": getattr(record, "service", "memo_service"),
        }

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


def configure_logging(level: int | str | None = None) -> None:
    """Configure the root logger once with JSON output.

    Safe to call multiple times; later calls are no-ops. The level defaults
    to the LOG_LEVEL env var, then INFO.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    _LOGGING_CONFIGURED = True
