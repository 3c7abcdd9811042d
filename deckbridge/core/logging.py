"""
Logging configuration for DeckBridge.

The library only emits structlog events; applications embedding it call
``setup_logging()`` once at startup if they want DeckBridge to own the setup.
"""
import logging
import sys

import structlog

from deckbridge.core.config import settings


def setup_logging(debug: bool | None = None):
    """
    Configure structured logging.

    Args:
        debug: Force console (True) or JSON (False) rendering. Defaults to
            ``settings.debug``.
    """
    if debug is None:
        debug = settings.debug

    log_level = logging.DEBUG if debug else getattr(logging, settings.log_level, logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            # Use console renderer in debug mode, JSON otherwise
            structlog.dev.ConsoleRenderer()
            if debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    # Reduce noise from the HTTP stack used for URL imports
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None):
    """
    Get a structured logger.

    Args:
        name: Optional logger name.

    Returns:
        Structured logger instance.
    """
    return structlog.get_logger(name)
