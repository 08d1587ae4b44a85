"""
Logging configuration

``LOG_FORMAT=json`` switches the console renderer for one JSON object per
line; ``LOG_LEVEL`` sets the default level.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import structlog

_configured: Optional[Tuple[int, Optional[str]]] = None


def _renderers():
    if os.getenv("LOG_FORMAT", "console").lower() == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Configure stdlib logging and structlog once per process.

    Calling again with a different level or log file reconfigures both.
    """
    global _configured

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if _configured == (log_level, log_file):
        return

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            # message_id / user_id bound by the pipeline ride along here
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            *_renderers(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Through stdlib so the file handler sees every line
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False
    )
    _configured = (log_level, log_file)


def setup_logger(name: Optional[str] = None, level: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a structured logger for a module.

    The first call configures logging from the environment; pass ``level``
    to change it.
    """
    if level is not None or _configured is None:
        configure_logging(level)
    return structlog.get_logger(name)


def bind_message_context(message_id: str, user_id: str) -> None:
    """Attach message/user identifiers to every log line in the current context."""
    structlog.contextvars.bind_contextvars(message_id=message_id, user_id=user_id)


def clear_message_context() -> None:
    structlog.contextvars.unbind_contextvars("message_id", "user_id")
