"""Structured logging setup using structlog.

Every event carries the request, user, workflow and inbound message ids when
they are known. The webhook and the workflow engine bind them with
``log_context`` so nested log calls do not have to repeat them.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import Any, Iterator

import structlog

from src.core.config import get_settings


CONTEXT_KEYS = ("request_id", "user_id", "workflow_id", "message_sid")

_CONFIGURED = False


def _add_default_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    del logger, method_name
    for key in CONTEXT_KEYS:
        event_dict.setdefault(key, None)
    return event_dict


def configure_logging() -> None:
    """Initialize structlog once for JSON-formatted logs."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(level=level, format="%(message)s")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_default_context,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


def _known(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, "")}


def bind_request_context(request_id: str, user_id: str | None = None) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id, **_known({"user_id": user_id}))


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind ids for the duration of the block; empty values are skipped and outer bindings come back after."""

    with structlog.contextvars.bound_contextvars(**_known(values)):
        yield


def current_log_context() -> dict[str, Any]:
    return dict(structlog.contextvars.get_contextvars())


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
