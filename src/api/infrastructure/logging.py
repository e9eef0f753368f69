"""Structlog configuration for the application.

Configures structlog with colored console output for development
and JSON output for production. Every event passes through a processor
that masks credentials, so a probe that logs a raw connection string or a
token never leaks it.
"""

import logging
import os
import re
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

SECRET_KEYS = frozenset({"password", "password_hash", "token", "secret", "authorization"})

# user:password@ in any postgres URL embedded in a log value
_URL_PASSWORD = re.compile(r"(postgres(?:ql)?(?:\+\w+)?://[^:/@\s]+:)[^@\s]+@")


def mask_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor hiding secret fields and URL passwords."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS and value is not None:
            event_dict[key] = "***"
        elif isinstance(value, str) and "://" in value:
            event_dict[key] = _URL_PASSWORD.sub(r"\1***@", value)
    return event_dict


def _resolve_level(level: str | None) -> int:
    """Map a level name such as "debug" to its numeric value (default INFO)."""
    name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(level: str | None = None) -> None:
    """Configure structlog with appropriate processors.

    Args:
        level: Minimum level to emit. Defaults to the LOG_LEVEL environment
            variable, then INFO.
    """
    # FORCE_COLOR=1 enables colors even in non-TTY environments (like Docker)
    force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")
    use_colors = force_color or sys.stdout.isatty()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
    ]

    if use_colors:
        processors: list[structlog.types.Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
