"""
searchsync Structured Logging

Every log line is a structlog event: snake_case name plus keyword context
(collection, index, doc_id, ...). Production renders one JSON object per
line; other environments get the colored console renderer.
"""

import logging
import sys

import structlog

# Chatty third-party loggers: one line per HTTP request / server heartbeat
_QUIET_LOGGERS = ("httpx", "pymongo")


def configure_logging(
    level: str = "info", env: str = "development", service: str | None = None
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level name (debug, info, warning, error)
        env: Application environment; "production" renders JSON
        service: Bound to every event as ``service`` when given
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if env == "production"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.contextvars.clear_contextvars()
    if service:
        structlog.contextvars.bind_contextvars(service=service, env=env)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
