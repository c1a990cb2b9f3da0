"""LLM orchestration: pluggable backends behind one canonical conversation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from assistant.llm.backends import BACKENDS, Backend, get_backend
from assistant.llm.base import (
    LLMResponse,
    Message,
    RequestOptions,
    ToolCall,
    ToolOutput,
    ToolSchema,
    Usage,
)
from assistant.llm.dispatch import Dispatcher
from assistant.llm.errors import (
    AssistantError,
    ConfigurationError,
    ToolLoopLimitExceeded,
    ToolNotFoundError,
    TransportError,
)
from assistant.llm.registry import ProviderConfig, ProviderRegistry
from assistant.llm.tool_loop import ToolLoop, ToolLoopResult
from assistant.llm.transport import HttpTransport, Transport

if TYPE_CHECKING:
    from assistant.config import AssistantSettings
    from assistant.tools import ToolCatalog


def create_tool_loop(
    settings: AssistantSettings,
    catalog: ToolCatalog | None = None,
    transport: Transport | None = None,
) -> ToolLoop:
    """Wire registry, transport and dispatcher from settings."""
    dispatcher = Dispatcher(
        registry=ProviderRegistry.from_settings(settings),
        transport=transport or HttpTransport(timeout=settings.llm_http_timeout_seconds),
        default_provider=settings.llm_default_provider.lower(),
        default_model=settings.llm_default_model,
        options=RequestOptions(
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        ),
    )
    return ToolLoop(dispatcher, catalog=catalog, max_rounds=settings.llm_max_tool_rounds)


__all__ = [
    "AssistantError",
    "BACKENDS",
    "Backend",
    "ConfigurationError",
    "Dispatcher",
    "HttpTransport",
    "LLMResponse",
    "Message",
    "ProviderConfig",
    "ProviderRegistry",
    "RequestOptions",
    "ToolCall",
    "ToolLoop",
    "ToolLoopLimitExceeded",
    "ToolLoopResult",
    "ToolNotFoundError",
    "ToolOutput",
    "ToolSchema",
    "Transport",
    "TransportError",
    "Usage",
    "create_tool_loop",
    "get_backend",
]
