"""
Structured logging.

structlog over stdlib logging, written to stderr. Configured once per process
(the CLI process and every CPU load worker process). There is no global
logger carrying context: the entrypoint creates one root logger bound with
the instance id and hands it to each component, which binds its own fields.
"""

import logging
import sys
import time
import uuid
from typing import Any, Callable, Optional

import structlog


def new_instance_id() -> str:
    """Random id distinguishing this run in aggregated logs."""
    return uuid.uuid4().hex[:20]


def add_elapsed(started: float) -> Callable[[Any, str, dict], dict]:
    """Processor adding seconds since ``started`` (a time.monotonic() value)."""

    def processor(logger, method_name, event_dict):
        event_dict.setdefault("elapsed", round(time.monotonic() - started, 6))
        return event_dict

    return processor


def configure_logging(
    level: str = "INFO",
    log_format: str = "console",
    started: Optional[float] = None,
) -> None:
    """Configure structlog and the stdlib root handler."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_elapsed(started if started is not None else time.monotonic()),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(instance_id: str, name: str = "troublemaker") -> structlog.stdlib.BoundLogger:
    """Root logger for one run, carrying its instance id."""
    return structlog.get_logger(name).bind(instance=instance_id)
