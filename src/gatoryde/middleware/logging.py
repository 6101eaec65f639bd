"""Structured logging configuration with structlog."""

import logging
from typing import Any

import structlog

from gatoryde.config import Settings
from gatoryde.notifications.templates import redact_pii

# Event keys that may carry a recipient address or provider error text
_SENSITIVE_KEYS = ("to", "email", "phone", "error", "recipient")


def redact_sensitive_fields(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask PII in well-known event keys before rendering."""
    for key in _SENSITIVE_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = redact_pii(value)
    return event_dict


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON (production) or console (development) output."""
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
