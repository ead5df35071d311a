"""Logging setup for the job engine.

The API and the worker process call ``configure_logging`` once at startup.
Records from ``logging.getLogger(__name__)`` and events from structlog
loggers share one processor chain and are rendered exactly once, by the root
handler's ``ProcessorFormatter``: a console renderer in debug mode, one JSON
object per line otherwise.

While a job runs, the worker pool binds ``queue``, ``job_id`` and
``job_type`` with ``structlog.contextvars``; those keys are merged into every
record logged from that executor task.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from jobengine.config import Settings

_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderers(debug: bool) -> list[structlog.types.Processor]:
    if debug:
        return [structlog.dev.ConsoleRenderer()]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging(settings: "Settings") -> None:
    """Route stdlib and structlog output through one root handler on stdout."""
    shared = _shared_processors()

    structlog.configure(
        processors=[
            *shared,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(settings.debug),
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structlog logger for modules that log with keyword fields."""
    return structlog.get_logger(name)
