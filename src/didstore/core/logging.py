# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for didstore.

Provides:
- JSON formatter for files and non-interactive stderr (machine-parseable)
- Standard formatter for terminals (human-readable)
- Operation context naming the lifecycle operation and DID in flight
- Redaction of key material passed as extra data
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from .config import StoreSettings, get_settings


@dataclass(frozen=True)
class OperationContext:
    """Lifecycle operation currently running in this task."""

    operation: str
    did: str | None = None

    def label(self) -> str:
        return f"{self.operation} {self.did}" if self.did else self.operation


# Context variable for the operation in flight (task-safe)
_operation: ContextVar[OperationContext | None] = ContextVar("didstore_operation", default=None)


def get_operation() -> OperationContext | None:
    """Get the operation context of the current task, if any."""
    return _operation.get()


@contextmanager
def operation_context(operation: str, did: str | None = None) -> Generator[OperationContext, None, None]:
    """Context manager scoping log records to one lifecycle operation.

    Example:
        with operation_context("register", did):
            logger.info("Submitting document")  # tagged with register + did
    """
    ctx = OperationContext(operation=operation, did=did)
    token = _operation.set(ctx)
    try:
        yield ctx
    finally:
        _operation.reset(token)


# Keys whose values never reach a log sink
SENSITIVE_KEYS = {
    "passphrase",
    "privatekeymultibase",
    "privatekeypem",
    "privatekey",
    "seed",
    "secret",
}


def redact(data: Any) -> Any:
    """Recursively replace sensitive values with a marker."""
    if isinstance(data, dict):
        return {
            key: "[REDACTED]" if str(key).lower() in SENSITIVE_KEYS else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    return data


class JSONFormatter(logging.Formatter):
    """JSON log formatter for log files and aggregation tools."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = get_operation()
        if ctx is not None:
            log_data["operation"] = ctx.operation
            if ctx.did:
                log_data["did"] = ctx.did

        # Add source location for errors
        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = redact(record.extra_data)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable formatter with colors for terminal output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    CONTEXT_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the untouched record
        record = logging.makeLogRecord(record.__dict__)

        ctx = get_operation()
        if ctx is not None:
            if self.use_colors:
                prefix = f"{self.CONTEXT_COLOR}[{ctx.label()}]{self.RESET} "
            else:
                prefix = f"[{ctx.label()}] "
            record.msg = prefix + str(record.msg)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
    settings: StoreSettings | None = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level; defaults to ``settings.log_level``
        json_format: Use JSON format (auto-detect from settings/TTY if None)
        log_file: Optional file to write JSON logs to
        settings: Settings to read defaults from (global settings if None)
    """
    settings = settings or get_settings()

    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = settings.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = settings.log_file if log_file is None else log_file

    formatter: logging.Formatter = JSONFormatter() if json_format else StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # Always use JSON for file output
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name (typically ``__name__``)."""
    return logging.getLogger(name)
