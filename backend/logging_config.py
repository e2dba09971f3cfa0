"""
Timesheet Reconciliation - Structured Logging

JSON output for log aggregation in production, plain text locally. While a
reconciliation run is active every record carries its run id and staff id.
"""

import json
import logging
import os
import sys
import traceback
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Attributes every LogRecord has; anything else arrived through ``extra``
STANDARD_RECORD_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "run_id", "staff_id",
])

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [run=%(run_id)s] %(message)s"

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

EMPTY_RUN_CONTEXT: Dict[str, Optional[str]] = {"run_id": None, "staff_id": None}

_run_context: ContextVar[Dict[str, Optional[str]]] = ContextVar("run_context", default=EMPTY_RUN_CONTEXT)


class JSONFormatter(logging.Formatter):
    """
    One JSON document per record.
    """

    def __init__(self, service_name: str = "timesheet-recon"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")

    def format(self, record: logging.LogRecord) -> str:
        document: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "run_id": getattr(record, "run_id", None),
            "staff_id": getattr(record, "staff_id", None),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            document["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        extra = {
            key: value for key, value in vars(record).items()
            if key not in STANDARD_RECORD_ATTRS
        }
        if extra:
            document["extra"] = extra

        return json.dumps(document, default=str)


class RunContextFilter(logging.Filter):
    """
    Stamps the active reconciliation run onto log records.

    The run is read from a context variable, so concurrent runs on the same
    event loop each see their own run id and staff id.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = _run_context.get()
        record.run_id = context["run_id"]
        record.staff_id = context["staff_id"]
        return True


_run_context_filter = RunContextFilter()


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "timesheet-recon"
) -> logging.Logger:
    """
    Route all logging through a single stdout handler.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON documents (production) or plain text
        service_name: Service name stamped on JSON records

    Returns:
        The root logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(_run_context_filter)
    handler.setFormatter(
        JSONFormatter(service_name=service_name) if json_format else logging.Formatter(PLAIN_FORMAT)
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def set_run_context(run_id: Optional[str] = None, staff_id: Optional[str] = None) -> Token:
    """
    Attach a run id and staff id to records logged from the current context.

    Returns the token to pass to clear_run_context when the run ends.
    """
    return _run_context.set({"run_id": run_id, "staff_id": staff_id})


def clear_run_context(token: Optional[Token] = None):
    """Restore the context that was active before set_run_context."""
    if token is not None:
        _run_context.reset(token)
    else:
        _run_context.set(EMPTY_RUN_CONTEXT)


def get_run_context() -> Dict[str, Optional[str]]:
    return dict(_run_context.get())
