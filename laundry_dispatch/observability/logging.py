"""Structured logging for the dispatch service.

Application modules log through ``structlog.get_logger(__name__)`` with
snake_case event names and key/value context; :func:`configure_logging` routes
those events through the stdlib root logger so uvicorn and library output end
up in the same stream.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict

import structlog

from laundry_dispatch.enterprise.config.settings import LoggingSettings

# Chatty client libraries stay at WARNING unless we are debugging.
_NOISY_LOGGERS = ("paho.mqtt", "aio_pika", "aiormq", "asyncio")


def _processors(json_output: bool) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(settings: LoggingSettings) -> None:
    level = getattr(logging, settings.level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    library_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=_processors(settings.json),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def bind_global_context(**context: Any) -> Dict[str, Any]:
    """Bind context vars included in every subsequent log line (service, environment)."""

    structlog.contextvars.bind_contextvars(**context)
    return context
