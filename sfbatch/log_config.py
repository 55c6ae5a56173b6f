"""
Structured logging setup

The library only calls structlog.get_logger(); applications that want
sfbatch's preferred output call configure_logging() once at startup.
"""

import logging
import sys
from typing import Optional
import structlog


def configure_logging(level: int = logging.INFO, json_output: Optional[bool] = None) -> None:
    """
    Configure structlog on top of the standard library logger.

    Args:
        level: Minimum level to emit
        json_output: Force JSON (True) or console (False) rendering;
            by default console on a TTY, JSON otherwise
    """
    if json_output is None:
        json_output = not sys.stdout.isatty()

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
