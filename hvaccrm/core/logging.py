"""Structured logging setup for the HVAC CRM service.

Library modules log through ``structlog.get_logger(__name__)`` with
event-style messages; this module wires structlog into stdlib logging once
per process.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog

SERVICE_NAME = "hvaccrm"


def _add_service_name(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog + stdlib logging.

    Args:
        level: Log level name; falls back to LOG_LEVEL, then INFO.
        log_format: "json" or "text"; falls back to LOG_FORMAT / JSON_LOGS.
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "text")
        if os.getenv("JSON_LOGS", "false").lower() == "true":
            log_format = "json"

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format.lower() == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    # Add FileHandler if logs directory exists
    log_file = Path("logs/hvaccrm.log")
    if log_file.parent.exists():
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(format="%(message)s", handlers=handlers, level=level)
