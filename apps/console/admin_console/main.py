"""Logging setup for the admin console."""

from __future__ import annotations

import json
import logging
import sys
import time

from admin_console.core.config import settings


class _RequestIDDefault(logging.Filter):
    """Give every record a request_id so the text format never breaks."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def setup_logging(level: str | None = None) -> None:
    """Configure structured JSON logging on stdout."""
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    # JSON format for structured logging
    class JSONFormatter(logging.Formatter):
        def format(self, record):
            log_data = {
                "timestamp": time.time(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }

            # Add extra fields from record
            request_id = getattr(record, "request_id", None)
            if request_id and request_id != "-":
                log_data["request_id"] = request_id

            for key in ("job_id", "error_code", "status_code", "path"):
                if hasattr(record, key):
                    log_data[key] = getattr(record, key)

            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_data, default=str, ensure_ascii=False)

    if settings.log_format == "json":
        formatter: logging.Formatter = JSONFormatter()
    else:
        # Human-readable format for dev
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - "
            "[%(request_id)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(_RequestIDDefault())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Clear existing handlers to avoid duplicates
    root_logger.handlers = []
    root_logger.addHandler(stdout_handler)

    # Set levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
