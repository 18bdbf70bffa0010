"""Logging for EDUBot."""

from edubot.monitoring.logger import (
    JSONFormatter,
    RunLogAdapter,
    SanitizingHandler,
    get_logger,
    log_performance_metric,
    log_run_event,
    setup_logging,
)

__all__ = [
    "JSONFormatter",
    "RunLogAdapter",
    "SanitizingHandler",
    "get_logger",
    "log_performance_metric",
    "log_run_event",
    "setup_logging",
]
