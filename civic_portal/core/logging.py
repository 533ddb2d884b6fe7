"""Structured logging for the civic portal.

Every record carries the current request id and acting user, taken from
context variables the HTTP middleware and the auth dependency fill in, so
services never have to thread them through ``extra=``. Production emits one
JSON object per line; development gets a readable single-line format.
"""
import json
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Attributes picked up from ``extra=`` into JSON output
CONTEXT_FIELDS = (
    "role", "method", "path", "status_code", "duration_ms", "operation",
    "complaint_id", "bill_id", "cycle_id", "error_code", "action",
)

DEV_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"


def bind_request(request_id: str) -> None:
    request_id_var.set(request_id)
    user_id_var.set("")


def bind_user(user_id: str) -> None:
    user_id_var.set(user_id)


class RequestContextFilter(logging.Filter):
    """Stamp request and user ids on every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get() or "-"
        if not getattr(record, "user_id", None):
            record.user_id = user_id_var.get() or None
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        if getattr(record, "request_id", "-") != "-":
            entry["request_id"] = record.request_id
        if getattr(record, "user_id", None):
            entry["user_id"] = record.user_id

        for attr in CONTEXT_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                entry[attr] = value

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """Install a single stdout handler on the root logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines for production, plain text otherwise

    Returns:
        The configured root logger
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(DEV_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric)
    root.addHandler(handler)

    # Engine echo is controlled by DB_ECHO, not the app level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogTimer:
    """Log how long a block took.

    Example:
        >>> with LogTimer(logger, "admin_dashboard"):
        ...     metrics = await get_dashboard_metrics(db)
        # Logs: "admin_dashboard completed in 12.5ms"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.started: Optional[float] = None

    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.started is None:
            return
        duration = round((time.perf_counter() - self.started) * 1000, 2)
        extra = {"operation": self.operation, "duration_ms": duration}
        if exc_type:
            # Domain errors are logged by the exception handler; just note the timing
            self.logger.warning(f"{self.operation} failed after {duration:.1f}ms: {exc_val}", extra=extra)
        else:
            self.logger.info(f"{self.operation} completed in {duration:.1f}ms", extra=extra)
