"""Structured logging configuration.

All modules log through ``structlog.get_logger(__name__)`` with key/value
context. ``configure_logging`` routes those events through the standard
logging module (so uvicorn and httpx logs share the same handler) and
renders them as JSON lines or as colored console output.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "info", fmt: str = "pretty") -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Minimum level name (debug, info, warning, error).
        fmt: ``json`` for one JSON object per line, ``pretty`` for console.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats exceptions itself
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
