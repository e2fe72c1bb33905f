"""Logging utilities for the AI processing service."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, cast

import structlog

from .security.contact import ContactDetailFilter

DEFAULT_LOG_LEVEL = "INFO"

_CONTACT_FILTER = ContactDetailFilter()


def redact_contact_details(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking e-mail addresses and phone numbers in string values."""

    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key], _ = _CONTACT_FILTER.redact(value)
    return event_dict


def setup_logging(level: str = DEFAULT_LOG_LEVEL, *, redact_contact: bool = True) -> None:
    """Configure structlog for JSON output with contextvars support."""
    log_level = _coerce_log_level(level)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if redact_contact:
        processors.append(redact_contact_details)
    processors.append(structlog.processors.JSONRenderer())

    structlog.reset_defaults()
    structlog.configure(
        processors=processors,
        context_class=dict,
        cache_logger_on_first_use=True,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )

    logging.basicConfig(level=log_level, format="%(message)s")


def _coerce_log_level(level: str) -> int:
    name = level.upper()
    numeric = logging.getLevelName(name)
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def get_logger(name: str | None = None) -> structlog.types.FilteringBoundLogger:
    return cast(structlog.types.FilteringBoundLogger, structlog.get_logger(name))


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
