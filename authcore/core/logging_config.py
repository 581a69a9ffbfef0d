"""Logging configuration.

Sets up stdlib logging and structlog with a shared processor chain:
level filtering, logger name, ISO timestamps, exception formatting,
secret redaction, and JSON (production) or console rendering.
"""

import logging
from collections.abc import MutableMapping
from typing import Any

import structlog

from authcore.core.config import Settings, settings

REDACTED = "[REDACTED]"

# Event keys whose values must never reach a log sink
_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_confirmation",
        "current_password",
        "hashed_password",
        "token",
        "token_hash",
        "encoded_token",
    }
)


def redact_sensitive_fields(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace values of sensitive keys with a placeholder."""
    for key in event_dict.keys() & _SENSITIVE_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(config: Settings = settings) -> None:
    """Configure stdlib logging and structlog from settings.

    Safe to call more than once; later calls replace the configuration.

    Args:
        config: Settings providing ``log_level`` and ``environment``.
    """
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", level=level, force=True)

    renderer: Any
    if config.environment == "production":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_sensitive_fields,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
