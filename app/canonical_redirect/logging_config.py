"""
Logging for the canonical URL redirect service.

Records carry structured fields in ``extra_fields``; ``LOG_FORMAT=json``
(default) writes one JSON object per line, ``LOG_FORMAT=pretty`` writes a
short coloured line for local runs.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

from canonical_redirect.telemetry import get_current_trace_fields

correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

REDIRECT_MESSAGE = "Redirected to canonical URL"


def _context_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    correlation_id = correlation_id_var.get()
    if correlation_id:
        fields["correlation_id"] = correlation_id
    fields.update(get_current_trace_fields())
    fields.update(getattr(record, "extra_fields", None) or {})
    return fields


class JSONFormatter(logging.Formatter):
    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    """
    One line per record. Redirect records read ``original -> location (status)``;
    other fields follow in brackets, correlation and trace ids shortened.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        fields = _context_fields(record)
        message = record.getMessage()

        if "location" in fields and "original_url" in fields:
            original = fields.pop("original_url")
            location = fields.pop("location")
            status = fields.pop("status_code", "")
            message = f"{message}: {original} -> {location} ({status})"

        parts = []
        correlation_id = fields.pop("correlation_id", None)
        if correlation_id:
            parts.append(f"id={correlation_id[:8]}")
        trace_id = fields.pop("trace_id", None)
        fields.pop("span_id", None)
        if trace_id:
            parts.append(f"trace={trace_id[:8]}")
        parts.extend(f"{key}={value}" for key, value in fields.items())

        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (
            f"{timestamp} {color}{record.levelname:<7}{self.RESET} "
            f"{self.DIM}{self.service_name}{self.RESET} | {message}"
        )
        if parts:
            line += f" {self.DIM}[{', '.join(parts)}]{self.RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def level_from_env(default: int = logging.INFO) -> int:
    raw = (os.getenv("LOG_LEVEL") or "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def setup_logging(service_name: str, level: int = logging.INFO) -> None:
    """Send root and uvicorn logs to stdout in the format named by LOG_FORMAT."""
    log_format = (os.getenv("LOG_FORMAT") or "json").strip().lower()
    if log_format == "pretty":
        formatter: logging.Formatter = PrettyFormatter(service_name)
    else:
        formatter = JSONFormatter(service_name)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        server_logger = logging.getLogger(logger_name)
        server_logger.handlers = [handler]
        server_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


def log_with_context(logger: logging.Logger, level: int, message: str, **fields) -> None:
    logger.log(level, message, extra={"extra_fields": fields})


def log_redirect(logger: logging.Logger, original_url: str, location: str, status_code: int) -> None:
    log_with_context(
        logger,
        logging.INFO,
        REDIRECT_MESSAGE,
        original_url=original_url,
        location=location,
        status_code=status_code,
    )
