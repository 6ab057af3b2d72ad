from __future__ import annotations

import logging
import sys
from typing import Any, Optional, TextIO

import structlog


def configure_logging(level: int = logging.INFO, *, stream: Optional[TextIO] = None) -> None:
    """Emit JSON log lines through the stdlib root handler.

    Logs go to stderr by default so command output on stdout stays parseable.
    """
    logging.basicConfig(format="%(message)s", level=level, stream=stream or sys.stderr, force=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    """Return a lazy logger that resolves the configuration on first use.

    Module-level loggers are created at import time, before
    ``configure_logging`` runs, so they must not bind eagerly.
    """
    return structlog.get_logger(**initial_values)


__all__ = ["configure_logging", "level_from_name", "get_logger"]
