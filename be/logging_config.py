"""Logging setup: stdlib loggers rendered through structlog.

Modules keep using ``logging.getLogger(__name__)``; ``setup_logging()`` wires
the root handler so every record comes out as JSON (or coloured console
lines when ``LOG_FORMAT=console`` or the level is DEBUG).
"""
from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from .config import settings

_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "api_key",
    "token",
    "secret",
    "password",
    "authorization",
})


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker."""
    for key in list(event_dict.keys()):
        if any(secret in key.lower() for secret in _SECRET_SUBSTRINGS):
            event_dict[key] = "[REDACTED]"
    return event_dict


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure root logging. Safe to call more than once.

    Args:
        level: Log level name; defaults to ``settings.logging.level``
        fmt: ``"json"`` or ``"console"``; defaults to ``settings.logging.format``
    """
    level_upper = (level or settings.logging.level).upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    use_console = (fmt or settings.logging.format) == "console" or level_upper == "DEBUG"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.ExtraAdder(),
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if use_console:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

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
    root_logger.setLevel(numeric_level)

    if not use_console:
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore", "openai"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
