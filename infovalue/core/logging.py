"""
Structured logging setup.

Engines log through ``structlog.get_logger(__name__)`` with snake_case event
names and key/value context. Call ``configure_logging`` once at process start
(the CLI does); library callers may configure structlog themselves instead.

Usage:
    from infovalue.core.logging import configure_logging

    configure_logging("DEBUG")
"""

import logging
import sys
from typing import Optional

import structlog

from infovalue.config import get_settings


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    if json_output is None:
        json_output = settings.LOG_JSON

    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def log_calculation_warnings(logger, warnings, **context) -> None:
    for warning in warnings:
        logger.info(
            "calculation_warning",
            code=warning.code.value,
            message=warning.message,
            **context,
        )
