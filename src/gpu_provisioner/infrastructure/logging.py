"""Structured logging for provisioning runs.

Dataproc captures an initialization action's stdout into the node's init
log, so every record ends up there as one line. Application events come
from structlog; domain services log through the standard library and are
rendered by the same processor chain, so both share one format.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional, TextIO

import structlog
from structlog.types import Processor

# Third-party loggers that are noisy at DEBUG during downloads
QUIET_LOGGERS = ("urllib3", "requests")


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    # the init log is a plain file
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: Optional[TextIO] = None,
) -> None:
    """Route structlog events and stdlib records to one stream.

    Args:
        level: Minimum level name, e.g. "INFO".
        log_format: "json" or "console".
        stream: Output stream, stdout when omitted.
    """
    log_level = getattr(logging, level.upper())

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """Get a bound logger instance."""
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
