"""Logging configuration for tallymatch.

Logs go to stderr so the answers the CLI prints on stdout stay clean, which
matters for ``tallymatch chat`` and for piping ``tallymatch resolve``.
"""

import logging
import os
import sys

import structlog

LEVEL_ENV_VARS = ("TALLYMATCH_LOG_LEVEL", "LOG_LEVEL")
DEFAULT_LEVEL = "WARNING"


def resolve_level(level: str | None = None) -> int:
    """Numeric level from the argument, then the environment, then WARNING."""
    name = level
    for var in LEVEL_ENV_VARS:
        if name:
            break
        name = os.environ.get(var)
    return getattr(logging, (name or DEFAULT_LEVEL).upper(), logging.WARNING)


def configure_logging(level: str | None = None, colors: bool | None = None) -> None:
    """Configure structlog with console output on stderr.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). If None, reads
               TALLYMATCH_LOG_LEVEL, then LOG_LEVEL.
        colors: Colorize output; by default only when stderr is a terminal.
    """
    if colors is None:
        colors = sys.stderr.isatty()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=resolve_level(level),
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
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
