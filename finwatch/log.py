"""
Structured Logging

Every component logs through structlog with snake_case event names and
key/value context, so the output can be grepped or shipped as JSON.

configure_logging() is idempotent and is called lazily by get_logger(),
hosts that want a different level call it explicitly at startup.
"""

import logging
import sys
from typing import Optional

import structlog

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure structlog and the stdlib root logger."""
    global _configured

    if level is None:
        from finwatch.config import get_settings
        level = get_settings().app.log_level

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )

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
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger, configuring structlog on first use."""
    if not _configured:
        configure_logging("INFO")
    return structlog.get_logger(name)
