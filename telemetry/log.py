"""
Structured logging setup.

Library modules only call ``structlog.get_logger(__name__)``; whichever
process hosts them (the producer CLI or the Django backend) configures
structlog once at startup so events flow through the standard library
loggers and their handlers.
"""

import logging
import sys

import structlog


def configure_logging(level="INFO", json_output=False, stdlib_handler=True):
    """
    Configure structlog to render through the standard library.

    Args:
        level: Log level name for the root logger
        json_output: Render JSON lines instead of the console format
        stdlib_handler: Install a stderr handler on the root logger; pass
            False when the host (e.g. Django's LOGGING) already has one
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if stdlib_handler:
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stderr,
            level=getattr(logging, level.upper(), logging.INFO),
        )
