"""Structured logging for the rulebook server and CLI.

Every record carries the service name and environment. Request handlers add
``request_id`` through structlog contextvars (see ``rulebook.api.middleware``).
"""

import logging
import sys
from typing import Optional

import structlog

from rulebook.config import Settings, get_settings

SERVICE_NAME = "rulebook"

# Third-party loggers and the level they run at outside of debug mode
_LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "asyncio": logging.WARNING,
}


class _ServiceInfo:
    """Stamp every event with the service name and deployment environment."""

    def __init__(self, environment: str):
        self.environment = environment

    def __call__(self, _logger, _method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", self.environment)
        return event_dict


def _renderer(settings: Settings) -> structlog.types.Processor:
    use_json = settings.log_format == "json" or (
        settings.log_format == "auto" and settings.is_production
    )
    if use_json:
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Set up structlog and the stdlib root logger from settings."""
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _ServiceInfo(settings.environment),
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level, force=True)

    for name, library_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level if settings.debug else library_level)
    # SQL statements are only logged when the engine echoes them
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.database_echo else logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
