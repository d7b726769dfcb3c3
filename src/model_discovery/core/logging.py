"""Structured logging configuration for the model discovery service.

Supports JSON output for log aggregation and a colored console renderer
for local use of the CLI and API.

Example usage:
    from model_discovery.core.logging import configure_logging, get_logger

    configure_logging(log_format="console", log_level="DEBUG")
    logger = get_logger(__name__)
    logger.info("Cached search page", query="llama", offset=0, items=20)
"""

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

LogFormat = Literal["json", "console"]


def configure_logging(
    log_format: LogFormat = "json",
    log_level: str = "INFO",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_format: "json" for machine-readable output, "console" for humans.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    # stdlib LoggerFactory gives loggers the .name that add_logger_name reads
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # httpx and uvicorn log through the stdlib
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger bound to ``name``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to every log line in the current context.

    Example:
        bind_context(query="mistral", offset=40)
        logger.info("Catalog page fetched")  # includes query and offset
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop all values bound with :func:`bind_context`."""
    structlog.contextvars.clear_contextvars()
