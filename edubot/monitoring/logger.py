"""
Logging configuration and utilities for EDUBot.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from edubot.config.settings import get_settings
from edubot.security.sanitizer import DataSanitizer

# Attributes every LogRecord has; anything else arrived through ``extra``.
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter with optional sanitization."""

    def __init__(self, *args, sanitize: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.sanitize = sanitize
        self.sanitizer = DataSanitizer() if sanitize else None

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        if self.sanitize and self.sanitizer:
            record = self.sanitizer.sanitize_log_record(record)

        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.sanitize and self.sanitizer:
            log_data = self.sanitizer.sanitize_dict(log_data)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class SanitizingHandler(logging.Handler):
    """Log handler that sanitizes messages before passing to wrapped handler."""

    def __init__(self, handler: logging.Handler, sanitizer: Optional[DataSanitizer] = None):
        super().__init__()
        self.handler = handler
        self.sanitizer = sanitizer or DataSanitizer()
        self.setLevel(handler.level)

    def emit(self, record: logging.LogRecord) -> None:
        """Emit sanitized record to wrapped handler."""
        try:
            sanitized_record = self.sanitizer.sanitize_log_record(record)
            self.handler.emit(sanitized_record)
        except Exception:
            self.handleError(record)


class RunLogAdapter(logging.LoggerAdapter):
    """Log adapter that stamps run context (workflow, record, step) on records."""

    def process(
        self, msg: str, kwargs: Dict[str, Any]
    ) -> tuple[str, Dict[str, Any]]:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    sanitize_logs: bool = True,
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        log_level: Logging level (defaults to settings)
        log_format: Log format 'json' or 'text' (defaults to settings)
        log_file: Optional log file path (defaults to settings)
        sanitize_logs: Whether to sanitize sensitive data in logs

    Returns:
        Root logger instance
    """
    settings = get_settings()

    level = log_level or settings.log_level
    format_type = log_format or settings.log_format
    file_path = log_file or settings.log_file

    numeric_level = getattr(logging, level.upper())

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if format_type == "json":
        console_handler: logging.Handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(JSONFormatter(sanitize=sanitize_logs))
    else:
        console = Console(stderr=True)
        console_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=settings.debug_mode,
        )

    console_handler.setLevel(numeric_level)

    # JSON formatter already sanitizes
    if sanitize_logs and format_type != "json":
        console_handler = SanitizingHandler(console_handler)

    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setLevel(numeric_level)

        if format_type == "json":
            file_handler.setFormatter(JSONFormatter(sanitize=sanitize_logs))
            root_logger.addHandler(file_handler)
        else:
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )
            )
            root_logger.addHandler(
                SanitizingHandler(file_handler) if sanitize_logs else file_handler
            )

    root_logger.setLevel(numeric_level)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger("edubot")
    logger.info(
        "EDUBot logging initialized",
        extra={
            "log_level": level,
            "log_format": format_type,
            "log_file": file_path,
            "sanitize_logs": sanitize_logs,
        },
    )

    return root_logger


def get_logger(name: str, **context: Any) -> logging.Logger:
    """
    Get a logger instance with optional context.

    Args:
        name: Logger name
        **context: Additional context to include in logs

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if context:
        return RunLogAdapter(logger, context)

    return logger


def log_run_event(
    event_type: str,
    workflow_id: Optional[int],
    record_index: Optional[int] = None,
    step_index: Optional[int] = None,
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a workflow run event.

    Args:
        event_type: Type of event
        workflow_id: Workflow identifier
        record_index: Optional zero-based record index
        step_index: Optional zero-based step index
        data: Additional event data
    """
    logger = logging.getLogger("edubot.run_events")

    extra: Dict[str, Any] = {
        "event_type": event_type,
        "workflow_id": workflow_id,
    }

    if record_index is not None:
        extra["record_index"] = record_index
    if step_index is not None:
        extra["step_index"] = step_index

    if data:
        for key, value in data.items():
            if key in _STANDARD_RECORD_ATTRS:
                key = f"event_{key}"
            extra.setdefault(key, value)

    logger.info(f"Run event: {event_type}", extra=extra)


def log_performance_metric(
    metric_name: str,
    value: float,
    unit: str = "ms",
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a performance metric.

    Args:
        metric_name: Name of the metric
        value: Metric value
        unit: Unit of measurement
        context: Additional context
    """
    logger = logging.getLogger("edubot.performance")

    extra: Dict[str, Any] = {
        "metric_name": metric_name,
        "value": value,
        "unit": unit,
    }

    if context:
        extra.update(context)

    logger.debug(f"Performance metric: {metric_name}={value:.1f}{unit}", extra=extra)
