"""
Lucid — Structured Logging

All logging via structlog. Every entry carries the service name and
version; components add their own `system` via logger.bind().
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from lucid import __version__

if TYPE_CHECKING:
    from structlog.typing import EventDict, WrappedLogger

    from lucid.config import LoggingConfig


def _service_context(service: str) -> Any:
    def add_service(
        logger: WrappedLogger, method_name: str, event_dict: EventDict,
    ) -> EventDict:
        event_dict.setdefault("service", service)
        event_dict.setdefault("version", __version__)
        return event_dict

    return add_service


def setup_logging(config: LoggingConfig) -> None:
    """
    Route structlog through stdlib logging with one stdout handler.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _service_context(config.service),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Any
    if config.format == "json":
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # foreign_pre_chain stamps stdlib records (uvicorn, httpx) the same way
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
