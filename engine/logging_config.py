"""Structured logging configuration for the signal engine."""

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

LOG_FORMAT_ENV = "SIGNAL_ENGINE_LOG_FORMAT"


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog on top of it."""
    logging.basicConfig(level=level.upper(), format="%(message)s", stream=sys.stderr)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
            if _is_json_mode()
            else structlog.dev.ConsoleRenderer(colors=True),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _is_json_mode() -> bool:
    """JSON unless forced to console, or stderr is an interactive terminal."""
    forced = os.environ.get(LOG_FORMAT_ENV, "").strip().lower()
    if forced in {"json", "console"}:
        return forced == "json"
    return not sys.stderr.isatty()


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields (job name, topic, user) to every log line in this context."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
