import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings as default_settings

# Context keys bound while a job is being processed
JOB_CONTEXT_KEYS = ("job_id", "queue_name", "actor_id")


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Debug mode renders coloured console output with the calling function;
    otherwise every line is a JSON object with exceptions formatted inline.
    """
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)

    # Handlers and registration code log through the standard library
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if settings.debug:
        processors += [
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
            ),
            structlog.dev.ConsoleRenderer(),
        ]
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Replace the log context with the current request's identifiers."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)


def bind_job_context(job_id: str, **context: Any) -> None:
    """Bind job identifiers to log messages emitted while a job is processed."""
    structlog.contextvars.bind_contextvars(job_id=job_id, **context)


def clear_job_context() -> None:
    structlog.contextvars.unbind_contextvars(*JOB_CONTEXT_KEYS)
