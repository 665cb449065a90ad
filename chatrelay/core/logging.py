"""structlog setup for the relay.

Debug mode renders colored key/value lines; otherwise every event is one
JSON object on stdout.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from chatrelay.core.config import Settings, get_settings

# Provider SDKs and transports log every request at INFO
QUIET_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "openai",
    "google_genai.models",
    "google.genai",
)


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp every event with the service name and version."""
    settings = get_settings()
    event_dict["app"] = settings.app_name
    event_dict["version"] = settings.app_version
    return event_dict


def _renderers(settings: Settings) -> list[Processor]:
    if settings.debug:
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger from settings."""
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_app_context,
        *_renderers(settings),
    ]

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
        level=getattr(logging, settings.log_level),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
