"""
Structured Logging Configuration

Provides:
- Correlation IDs for tracing one supervised call across log lines
- JSON formatting for machine parsing
- Human-readable console formatting
- Log rotation support
"""

import contextvars
import json
import logging
import logging.handlers
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4


correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)
operation_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "operation", default=None
)


class CorrelationContext:
    """Context manager for setting correlation context."""

    def __init__(self, correlation_id: Optional[str] = None, operation: Optional[str] = None):
        self.correlation_id = correlation_id or str(uuid4())
        self.operation = operation
        self._tokens = []

    def __enter__(self):
        self._tokens.append((correlation_id_var, correlation_id_var.set(self.correlation_id)))
        if self.operation:
            self._tokens.append((operation_var, operation_var.set(self.operation)))
        return self

    def __exit__(self, *args):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _context_fields() -> dict:
    """Correlation context currently set, skipping unset values."""
    fields = {"correlation_id": correlation_id_var.get(), "operation": operation_var.get()}
    return {key: value for key, value in fields.items() if value}


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": _timestamp(record).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread_name": record.threadName,
        }

        log_data.update(_context_fields())

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class StructuredFormatter(logging.Formatter):
    """Human-readable structured formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_color: bool = True, stream=None):
        super().__init__()
        self.use_color = use_color
        self.stream = stream or sys.stderr

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structure and color."""
        timestamp = _timestamp(record).strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_color and hasattr(self.stream, "isatty") and self.stream.isatty():
            color = self.COLORS.get(level, "")
            level = f"{color}{level}{self.COLORS['RESET']}"

        parts = [
            f"[{timestamp}]",
            f"[{level}]",
            f"[{record.name}]",
            record.getMessage(),
        ]

        context = _context_fields()
        if "correlation_id" in context:
            context["correlation_id"] = context["correlation_id"][:8]
        if context:
            context_parts = [f"{key}={value}" for key, value in context.items()]
            parts.append(f"[{', '.join(context_parts)}]")

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            parts.append(f"\n{exc_text}")

        return " ".join(parts)


def setup_logging(
    level: Union[str, int] = logging.INFO,
    json_format: bool = False,
    log_dir: Optional[Union[str, Path]] = None,
    log_file: str = "retryguard.log",
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting for console and file output
        log_dir: Directory for a rotating log file; no file handler when None
        log_file: Name of the log file
        console_output: Enable console output (stderr)
        max_bytes: Max size of log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured root logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        if json_format:
            console_handler.setFormatter(JSONFormatter())
        else:
            console_handler.setFormatter(StructuredFormatter(use_color=True, stream=sys.stderr))
        root_logger.addHandler(console_handler)

    return root_logger


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID for current context and return it."""
    cid = correlation_id or str(uuid4())
    correlation_id_var.set(cid)
    return cid


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id_var.get()
