"""
Structured logging configuration for the monitoring engine.

Features:
- JSON structured logging for production
- Colored console logging for development
- Context propagation (background loop, metric id)
- Tick duration logging
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

# Context variables for log correlation
_loop_name: ContextVar[Optional[str]] = ContextVar("loop_name", default=None)
_metric_id: ContextVar[Optional[str]] = ContextVar("metric_id", default=None)
_extra_context: ContextVar[Dict[str, Any]] = ContextVar("extra_context", default={})

T = TypeVar("T")

_STANDARD_FIELDS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


def set_loop_name(name: Optional[str]) -> None:
    """Set the background loop the current task belongs to."""
    _loop_name.set(name)


def set_metric_id(metric_id: Optional[str]) -> None:
    """Set the metric currently being processed."""
    _metric_id.set(metric_id)


def set_context(**kwargs: Any) -> None:
    """Set additional context fields."""
    current = _extra_context.get().copy()
    current.update(kwargs)
    _extra_context.set(current)


def clear_context() -> None:
    """Clear extra context."""
    _extra_context.set({})


class StructuredFormatter(logging.Formatter):
    """
    JSON structured log formatter for production.

    Output format:
    {
        "timestamp": "2024-12-22T02:15:30.123456Z",
        "level": "WARNING",
        "logger": "monitor_core.alerting.engine",
        "message": "[Alerts] High CPU Usage triggered",
        "loop": "flush",
        "metric_id": "metric_system_cpu_usage",
        "extra": {...}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        loop_name = _loop_name.get()
        metric_id = _metric_id.get()
        extra = _extra_context.get()

        if loop_name:
            log_data["loop"] = loop_name
        if metric_id:
            log_data["metric_id"] = metric_id
        if extra:
            log_data["context"] = extra

        record_extras = {
            k: v for k, v in record.__dict__.items()
            if k not in _STANDARD_FIELDS and not k.startswith("_")
        }
        if record_extras:
            log_data["extra"] = record_extras

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class RichConsoleFormatter(logging.Formatter):
    """
    Console formatter for development with colors and context.
    """

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        context_parts = []
        loop_name = _loop_name.get()
        metric_id = _metric_id.get()

        if loop_name:
            context_parts.append(f"loop={loop_name}")
        if metric_id:
            context_parts.append(f"metric={metric_id}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        output = (
            f"{self.DIM}{timestamp}{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:8}{self.RESET} "
            f"{self.DIM}{record.name}{self.RESET}"
            f"{context_str}: "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(
        default_factory=lambda: os.getenv("MONITOR_LOG_LEVEL", "INFO")
    )
    format: str = field(
        default_factory=lambda: os.getenv("MONITOR_LOG_FORMAT", "rich")
    )  # "rich" or "json"

    log_file: Optional[Path] = field(
        default_factory=lambda: Path(os.getenv("MONITOR_LOG_FILE", ""))
        if os.getenv("MONITOR_LOG_FILE") else None
    )
    max_file_size_mb: int = 50
    backup_count: int = 5

    console_enabled: bool = True

    quiet_loggers: list = field(
        default_factory=lambda: [
            "aiohttp",
            "urllib3",
            "asyncio",
        ]
    )


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure logging for the monitoring engine.

    Args:
        config: Logging configuration. Uses defaults if None.
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)

        if config.format == "json":
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(RichConsoleFormatter())

        root_logger.addHandler(console_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)

        from logging.handlers import RotatingFileHandler

        file_handler = RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for logger_name in config.quiet_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("monitor_core").setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for temporary log context.

    Example:
        with LogContext(loop="flush", metric_id="metric_system_cpu_usage"):
            logger.info("Flushed")  # Includes loop and metric
        logger.info("Done")         # Context restored
    """

    def __init__(self, loop: Optional[str] = None, metric_id: Optional[str] = None, **kwargs: Any):
        self._loop = loop
        self._metric = metric_id
        self._context = kwargs
        self._tokens: list = []
        self._previous: Dict[str, Any] = {}

    def __enter__(self) -> "LogContext":
        if self._loop is not None:
            self._tokens.append((_loop_name, _loop_name.set(self._loop)))
        if self._metric is not None:
            self._tokens.append((_metric_id, _metric_id.set(self._metric)))
        self._previous = _extra_context.get().copy()
        if self._context:
            new_context = self._previous.copy()
            new_context.update(self._context)
            _extra_context.set(new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
        _extra_context.set(self._previous)


def log_duration(
    logger: logging.Logger,
    level: int = logging.DEBUG,
    message: str = "Operation completed",
) -> Callable:
    """
    Decorator to log function duration.

    Example:
        @log_duration(logger, message="[Insights] Generation pass")
        async def generate():
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = (time.perf_counter() - start) * 1000
                logger.error(
                    f"{message} failed ({duration:.2f}ms): {e}",
                    extra={"duration_ms": duration, "function": func.__name__, "error": str(e)},
                )
                raise
            duration = (time.perf_counter() - start) * 1000
            logger.log(
                level,
                f"{message} ({duration:.2f}ms)",
                extra={"duration_ms": duration, "function": func.__name__},
            )
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = (time.perf_counter() - start) * 1000
                logger.error(
                    f"{message} failed ({duration:.2f}ms): {e}",
                    extra={"duration_ms": duration, "function": func.__name__, "error": str(e)},
                )
                raise
            duration = (time.perf_counter() - start) * 1000
            logger.log(
                level,
                f"{message} ({duration:.2f}ms)",
                extra={"duration_ms": duration, "function": func.__name__},
            )
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
