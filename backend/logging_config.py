"""
User Directory - Structured Logging

JSON logs for production (log aggregation), plain text otherwise.
Every record carries the id of the request it was emitted for.
"""

import json
import logging
import os
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "request_id",
}


class JSONFormatter(logging.Formatter):
    """
    Custom formatter that outputs JSON logs.
    Compatible with log aggregation services.
    """

    def __init__(self, service_name: str = "user-directory"):
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
            "request_id": getattr(record, "request_id", None),
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
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class RequestContextFilter(logging.Filter):
    """Adds the current request id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "user-directory"
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

    handler.addFilter(RequestContextFilter())
    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_request_context(request_id: Optional[str] = None):
    """Set request context for logging."""
    _request_id.set(request_id)


def clear_request_context():
    """Clear request context."""
    _request_id.set(None)


def get_request_id() -> Optional[str]:
    return _request_id.get()
