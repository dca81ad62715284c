"""
Structured logging for the orchestrator.

Production emits one JSON object per line; development gets the coloured
console renderer. Context bound with ``log_context`` (message type, alarm
name, listing id) is merged into every record emitted inside the block.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog
from structlog.types import Processor

from motorscope.config.settings import get_settings

NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Overrides ``LOG_LEVEL`` (e.g. "DEBUG" from ``--debug``)
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.tracing_enabled:
        from motorscope.observability.tracing import add_trace_context

        processors.append(add_trace_context)

    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**fields) -> Iterator[None]:
    """Bind fields to every log record emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**fields):
        yield
