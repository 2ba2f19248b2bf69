"""Structured logging with structlog, rendered through the stdlib root logger."""

import logging

import structlog
from django.conf import settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Route structlog through stdlib logging.

    ``level`` and ``fmt`` default to ``LOG_LEVEL`` and ``LOG_FORMAT``. Root
    handlers (installed from ``LOGGING``) get a formatter that renders the
    structlog event dict, as JSON or for the console.
    """
    level = (level or settings.LOG_LEVEL).upper()
    fmt = fmt or settings.LOG_FORMAT

    logging.root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    formatter = structlog.stdlib.ProcessorFormatter(processor=renderer)

    for handler in logging.root.handlers:
        handler.setFormatter(formatter)
