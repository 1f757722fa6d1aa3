"""
Narrative Report Generator - Logging

structlog setup used by the CLI and by embedding services.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from .config import LogConfig, LogFormat


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        config: Logging configuration (loaded from environment if omitted)
    """
    config = config or LogConfig()
    level = logging.getLevelName(config.level)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    if config.format == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
