"""
Utilities module for the monitoring engine.

Provides:
- Async helpers (timeouts, bounded gather, background task tracking)
- Structured logging configuration
"""

from monitor_core.utils.async_helpers import (
    BackgroundTasks,
    gather_with_concurrency,
    run_with_timeout,
)

from monitor_core.utils.logging_config import (
    setup_logging,
    get_logger,
    LoggingConfig,
    LogContext,
    StructuredFormatter,
    RichConsoleFormatter,
    set_loop_name,
    set_metric_id,
    set_context,
    clear_context,
    log_duration,
)

__all__ = [
    # Async helpers
    "BackgroundTasks",
    "gather_with_concurrency",
    "run_with_timeout",
    # Logging
    "setup_logging",
    "get_logger",
    "LoggingConfig",
    "LogContext",
    "StructuredFormatter",
    "RichConsoleFormatter",
    "set_loop_name",
    "set_metric_id",
    "set_context",
    "clear_context",
    "log_duration",
]
