"""
OTP Core Logging
================
structlog setup for hosts that do not configure logging themselves.

Usage:
    from otp_core.logging import configure_logging
    configure_logging(level="INFO", json_output=True)
"""

import logging
import sys
from typing import Union

import structlog


def configure_logging(level: Union[str, int] = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog processors and the minimum level.

    Args:
        level: Level name or number
        json_output: JSON lines (True) or colored console output (False)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def mask_destination(destination: str) -> str:
    """
    Mask an email address for logs.

    >>> mask_destination("alice@example.com")
    'a***e@example.com'
    """
    if not destination:
        return ""
    local, sep, domain = destination.partition("@")
    if len(local) <= 2:
        masked = local[:1] + "***"
    else:
        masked = f"{local[0]}***{local[-1]}"
    return f"{masked}{sep}{domain}"
