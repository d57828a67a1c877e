"""Structured logging configuration for the Prompt Optimiser.

This module provides centralized logging configuration with support for:
- Structured JSON logging for production
- Console logging that appends the request context for development
- Log rotation and file output
- Request-scoped context (client identity, mode, vendor) that stays
  with the asyncio task that set it

Request text, answers and model output must never reach a log sink.
Records that carry them as extras have those fields replaced by their
length before they are written.

Example:
    >>> from prompt_optimiser.logging_config import setup_logging, LogContext
    >>> setup_logging(level="DEBUG", json_format=False)
    >>> with LogContext(client_id="203.0.113.7", mode="critique"):
    ...     logging.getLogger(__name__).info("Request handled")

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_DIR = "logs"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

# Request fields shown on console lines, in this order
CONTEXT_FIELDS = ("client_id", "mode", "vendor", "path")

# Extras that would carry user or model text
PAYLOAD_FIELDS = frozenset({
    "input_text",
    "additional_context",
    "problem_context",
    "system_prompt",
    "user_message",
    "raw_text",
    "generated_prompt",
    "answers",
})

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
}

_log_context: ContextVar[dict[str, Any]] = ContextVar("prompt_optimiser_log_context", default={})

# Global state
_logging_initialized = False


def _redact(key: str, value: Any) -> tuple[str, Any]:
    if key in PAYLOAD_FIELDS:
        return f"{key}_chars", len(value) if isinstance(value, (str, list, dict)) else None
    return key, value


class RequestContextFilter(logging.Filter):
    """Copy the active ``LogContext`` fields onto each record.

    Fields passed explicitly through ``extra=`` win over the context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON objects for easy parsing by log
    aggregation systems. Payload extras are reduced to their length.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            key, value = _redact(key, value)
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class ContextFormatter(logging.Formatter):
    """Plain formatter that appends the request context, e.g. ``[client_id=... mode=critique]``."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt or DEFAULT_LOG_FORMAT, datefmt or DEFAULT_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        ]
        if pairs:
            line = f"{line} [{' '.join(pairs)}]"
        return line


class ColoredFormatter(ContextFormatter):
    """Colored console formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Color a copy so other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str | int = DEFAULT_LOG_LEVEL,
    json_format: bool = False,
    log_file: str | Path | None = None,
    log_dir: str | Path = DEFAULT_LOG_DIR,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> None:
    """Configure logging for the service.

    Call this once at startup; later calls are no-ops. Every handler gets
    a ``RequestContextFilter`` so ``LogContext`` fields reach the output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, use JSON structured logging on the console.
        log_file: Optional log file name. File logs are always JSON.
        log_dir: Directory for log files.
        max_bytes: Maximum size of log file before rotation.
        backup_count: Number of backup files to keep.
    """
    global _logging_initialized

    if _logging_initialized:
        return

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    context_filter = RequestContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.addFilter(context_filter)

    if json_format:
        console_handler.setFormatter(StructuredFormatter())
    elif sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter())
    else:
        console_handler.setFormatter(ContextFormatter())

    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir) / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(level)
        file_handler.addFilter(context_filter)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # Client libraries log request URLs and bodies at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)

    _logging_initialized = True


def reset_logging() -> None:
    """Allow ``setup_logging`` to run again (used by tests)."""
    global _logging_initialized
    _logging_initialized = False


class LogContext:
    """Attach request fields to every record logged inside the block.

    The fields live in a ``ContextVar``, so concurrent requests handled
    on one event loop each see only their own context.

    Example:
        >>> with LogContext(client_id="203.0.113.7", mode="critique"):
        ...     logger.info("Processing request")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _log_context.reset(self._token)


def setup_from_env() -> None:
    """Configure logging from environment variables.

    Environment variables:
        PROMPTOPT_LOG_LEVEL: Log level (default: INFO)
        PROMPTOPT_LOG_JSON: Use JSON format (default: false)
        PROMPTOPT_LOG_FILE: Log file name (default: None)
        PROMPTOPT_LOG_DIR: Log directory (default: logs)
    """
    setup_logging(
        level=os.environ.get("PROMPTOPT_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        json_format=os.environ.get("PROMPTOPT_LOG_JSON", "false").lower() == "true",
        log_file=os.environ.get("PROMPTOPT_LOG_FILE"),
        log_dir=os.environ.get("PROMPTOPT_LOG_DIR", DEFAULT_LOG_DIR),
    )
