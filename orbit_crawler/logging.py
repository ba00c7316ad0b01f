"""Structured logging for the crawl engine.

Uses structlog on top of stdlib ``logging``.  Engine modules log an event
name plus key/value context::

    logger = get_logger(__name__)
    logger.info("page_fetched", url=url, outcome="ok")
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from structlog.types import Processor

from orbit_crawler.config import settings

_logging_configured = False


def _add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ISO timestamp to log event."""
    event_dict["timestamp"] = (
        datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
    return event_dict


def _add_log_level(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["level"] = method_name.upper()
    return event_dict


def configure_logging(
    log_level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure stdlib logging and the structlog processor chain.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR.  Uses settings if None.
        json_format: JSON lines (True) or coloured console output (False).
            Uses settings if None.
    """
    global _logging_configured

    level_name = (log_level or settings.log_level).upper()
    use_json = settings.log_json if json_format is None else json_format
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_timestamp,
        _add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if use_json:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logging_configured = True


def ensure_logging_configured() -> None:
    """Configure logging once; later calls are no-ops."""
    if not _logging_configured:
        configure_logging()


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to *name* (usually ``__name__``)."""
    return structlog.get_logger(name)


class LogContext:
    """Bind key/value pairs to every log call inside a ``with`` block.

    Example::

        with LogContext(orbit_id="orbit_123"):
            crawler.crawl(url)
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
