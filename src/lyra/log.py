"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_SECRET_MARKERS = ("token", "secret", "password", "key", "authorization")
REDACTED = "***REDACTED***"


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask string fields whose names look like credentials."""
    for key, value in event_dict.items():
        if key == "event":
            continue
        if isinstance(value, str) and any(m in key.lower() for m in _SECRET_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog with console or JSON output."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
        exc_processor: Any = structlog.processors.format_exc_info
    else:
        renderer = structlog.dev.ConsoleRenderer()
        exc_processor = structlog.dev.set_exc_info

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            exc_processor,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance."""
    return structlog.get_logger(name)
