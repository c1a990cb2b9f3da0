"""Dispatch orchestrator: one request to one provider.

Validates the provider/model pair, hands the conversation to the matching
translator, issues the request and returns the canonical response, decoded
either from a full body or from the event stream.
"""

from __future__ import annotations

import inspect
import time
from contextlib import aclosing
from collections.abc import Callable
from typing import Any

from shared.log import get_logger

from assistant.llm.backends import get_backend
from assistant.llm.base import LLMResponse, Message, RequestOptions, ToolSchema
from assistant.llm.errors import TransportError
from assistant.llm.registry import ProviderRegistry
from assistant.llm.streaming import DeltaEvent, StreamAccumulator, iter_sse_events
from assistant.llm.transport import Transport

logger = get_logger("llm.dispatch")

DeltaCallback = Callable[[DeltaEvent], Any]  # may return an awaitable


class Dispatcher:
    def __init__(
        self,
        registry: ProviderRegistry,
        transport: Transport,
        default_provider: str = "openai",
        default_model: str | None = None,
        options: RequestOptions | None = None,
    ) -> None:
        self._registry = registry
        self._transport = transport
        self._default_provider = default_provider
        self._default_model = default_model or None
        self._options = options or RequestOptions()

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def resolve(self, provider: str | None, model: str | None):
        """Validate and resolve the provider/model used for a request."""
        name = provider or self._default_provider
        if model is None and name == self._default_provider:
            model = self._default_model
        return self._registry.require(name, model)

    async def send(
        self,
        conversation: list[Message],
        *,
        provider: str | None = None,
        model: str | None = None,
        tools: list[ToolSchema] | None = None,
        stream: bool | None = None,
        on_delta: DeltaCallback | None = None,
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        config, resolved_model = self.resolve(provider, model)
        backend = get_backend(config.family)
        streaming = stream if stream is not None else on_delta is not None

        request = backend.encode(
            conversation,
            tools or [],
            provider=config,
            model=resolved_model,
            options=options or self._options,
            stream=streaming,
        )
        logger.info(
            "llm_request",
            provider=config.name,
            model=resolved_model,
            messages=len(conversation),
            tools=len(tools or []),
            stream=streaming,
        )

        start = time.monotonic()
        try:
            if streaming:
                response = await self._stream(backend, request, config.name, resolved_model, on_delta)
            else:
                body = await self._transport.send(request)
                response = backend.parse_response(body, resolved_model)
                response.provider = config.name
        except TransportError as exc:
            exc.provider = exc.provider or config.name
            logger.error("llm_request_failed", provider=config.name, status=exc.status_code, error=str(exc))
            raise

        logger.info(
            "llm_response",
            provider=config.name,
            model=response.model,
            tool_calls=len(response.tool_calls),
            content_len=len(response.content),
            finish_reason=response.finish_reason,
            latency_ms=round((time.monotonic() - start) * 1000.0, 1),
        )
        return response

    async def _stream(self, backend, request, provider: str, model: str, on_delta) -> LLMResponse:
        accumulator = StreamAccumulator(provider=provider, model=model)
        chunks = self._transport.stream(request)
        records = iter_sse_events(chunks)
        # Close every layer down to the HTTP response, also on error or early exit.
        async with aclosing(chunks), aclosing(records), aclosing(backend.decode_stream(records)) as events:
            async for event in events:
                accumulator.feed(event)
                if on_delta is not None:
                    result = on_delta(event)
                    if inspect.isawaitable(result):
                        await result
        return accumulator.result()
