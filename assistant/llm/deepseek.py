"""DeepSeek chat family.

Same wire shape as the OpenAI chat-completions API, with two differences:

- reasoner models stream their chain of thought in ``reasoning_content``,
  which is surfaced separately and must never be sent back in history;
- reasoner models reject sampling parameters, so ``temperature`` is only
  sent to the chat models.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from assistant.llm import openai_compat
from assistant.llm.base import LLMResponse, Message, RequestOptions, ToolSchema, WireRequest
from assistant.llm.registry import ProviderConfig
from assistant.llm.streaming import DeltaEvent, SSEEvent

FAMILY = "deepseek"
REASONING_FIELD = "reasoning_content"


def encode(
    conversation: list[Message],
    tools: list[ToolSchema],
    *,
    provider: ProviderConfig,
    model: str,
    options: RequestOptions,
    stream: bool = False,
) -> WireRequest:
    request = openai_compat.encode(
        conversation, tools, provider=provider, model=model, options=options, stream=stream,
    )
    if "reasoner" in model:
        request.body.pop("temperature", None)
    return request


def decode_request(body: dict[str, Any]) -> list[Message]:
    return openai_compat.decode_request(body)


def parse_response(body: dict[str, Any], model: str) -> LLMResponse:
    return openai_compat.parse_response(body, model, reasoning_field=REASONING_FIELD)


def decode_stream(events: AsyncIterable[SSEEvent]) -> AsyncIterator[DeltaEvent]:
    return openai_compat.decode_stream(events, reasoning_field=REASONING_FIELD)
