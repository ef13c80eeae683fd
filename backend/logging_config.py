"""
Staff Directory Core - Structured JSON Logging

Provides structured logging for production environments.
Outputs JSON format for log aggregation (Datadog, CloudWatch, etc.)
"""

import logging
import json
import sys
import os
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback


_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
}

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs JSON logs.
    Compatible with log aggregation services.
    """

    def __init__(self, service_name: str = "staff-directory"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
        }

        log_data["location"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class RequestContextFilter(logging.Filter):
    """
    Adds request context to log records.

    The request id lives in a ContextVar so concurrent requests on one event
    loop do not see each other's ids.
    """

    def set_request_context(self, request_id: Optional[str] = None):
        _request_id.set(request_id)

    def clear_request_context(self):
        _request_id.set(None)

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


# Global request context filter instance
_request_context_filter: Optional[RequestContextFilter] = None


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "staff-directory"
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    global _request_context_filter

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        ))

    _request_context_filter = RequestContextFilter()
    handler.addFilter(_request_context_filter)

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_request_context(request_id: Optional[str] = None):
    """Set request context for logging."""
    if _request_context_filter:
        _request_context_filter.set_request_context(request_id)


def clear_request_context():
    """Clear request context."""
    if _request_context_filter:
        _request_context_filter.clear_request_context()
