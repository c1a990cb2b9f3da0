"""Structured logging setup shared across the assistant backend.

Usage:
    from shared.log import get_logger
    logger = get_logger("llm.dispatch")
    logger.info("llm_request", provider="openai", model="gpt-4o")
"""

import logging
import sys
from collections.abc import MutableMapping
from contextlib import AbstractContextManager
from typing import Any

import structlog

# Context keys that may carry provider credentials.
_SECRET_KEYS = {"api_key", "authorization", "x-api-key", "x-goog-api-key", "headers"}


def _redact_secrets(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Mask credential-bearing values before they reach the renderer."""
    for key in list(event_dict.keys()):
        if key.lower() in _SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def _normalize_log_event(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Normalize logs to: timestamp, level, service, msg, context."""
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")

    reserved = {"timestamp", "level", "service", "msg", "context"}
    context = event_dict.get("context")
    if not isinstance(context, dict):
        context = {} if context is None else {"value": context}

    for key in list(event_dict.keys()):
        if key not in reserved:
            context[key] = event_dict.pop(key)

    event_dict["context"] = context
    return event_dict


def setup_logging(level: str = "INFO", log_format: str = "auto") -> None:
    """Configure structlog for JSON logs in containers and console logs locally."""
    global _initialized
    _initialized = True
    is_json = log_format.lower() == "json" or (
        log_format.lower() == "auto" and not sys.stdout.isatty()
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if is_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            _redact_secrets,
            _normalize_log_event,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def bind_context(**values: Any) -> AbstractContextManager[None]:
    """Bind values to every log line emitted inside the ``with`` block.

    Usage:
        with bind_context(run_id="3f2a9c1e"):
            logger.info("tool_call", tool="search")  # carries run_id
    """
    return structlog.contextvars.bound_contextvars(**values)


_initialized = False


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with the component name."""
    if not _initialized:
        from shared.config import Settings

        settings = Settings()
        setup_logging(settings.log_level, settings.log_format)

    return structlog.get_logger(service=component)
