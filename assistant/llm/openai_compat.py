"""OpenAI-compatible chat-completions family.

Works with OpenAI and Ollama (via its /v1 endpoint). DeepSeek reuses this
wire shape with small differences, see ``deepseek.py``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from assistant.llm.base import (
    LLMResponse,
    Message,
    RequestOptions,
    ToolCall,
    ToolSchema,
    Usage,
    WireRequest,
    new_call_id,
)
from assistant.llm.registry import ProviderConfig
from assistant.llm.streaming import (
    DeltaEvent,
    Metadata,
    ReasoningDelta,
    SSEEvent,
    StreamDone,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnd,
    ToolCallStart,
    RECORD_SHAPE_ERRORS,
    load_record,
    skip_record,
    parse_arguments,
)

FAMILY = "openai"
DONE_MARKER = "[DONE]"


def encode(
    conversation: list[Message],
    tools: list[ToolSchema],
    *,
    provider: ProviderConfig,
    model: str,
    options: RequestOptions,
    stream: bool = False,
) -> WireRequest:
    body: dict[str, Any] = {
        "model": model,
        "messages": convert_messages(conversation),
        "max_tokens": options.max_tokens,
        "temperature": options.temperature,
    }
    if tools:
        body["tools"] = convert_tools(tools)
    if stream:
        body["stream"] = True
        body["stream_options"] = {"include_usage": True}

    headers = {"Content-Type": "application/json"}
    if provider.api_key:
        headers["Authorization"] = f"Bearer {provider.api_key}"
    return WireRequest(
        url=f"{provider.base_url.rstrip('/')}/chat/completions",
        headers=headers,
        body=body,
        stream=stream,
    )


def convert_tools(tools: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            },
        }
        for tool in tools
    ]


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert unified messages to OpenAI format."""
    result: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role in ("system", "user"):
            result.append({"role": msg.role, "content": msg.content})

        elif msg.role == "assistant":
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            result.append(entry)

        elif msg.role == "tool":
            result.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id or "",
                "content": msg.content,
            })

    return result


def decode_request(body: dict[str, Any]) -> list[Message]:
    """Rebuild the canonical conversation from an encoded request body."""
    messages: list[Message] = []
    for entry in body.get("messages", []):
        role = entry.get("role")
        if role in ("system", "user"):
            messages.append(Message(role=role, content=entry.get("content") or ""))
        elif role == "assistant":
            messages.append(Message(
                role="assistant",
                content=entry.get("content") or "",
                tool_calls=[_tool_call(tc) for tc in entry.get("tool_calls") or []],
            ))
        elif role == "tool":
            messages.append(Message(
                role="tool",
                content=entry.get("content") or "",
                tool_call_id=entry.get("tool_call_id"),
            ))
    return messages


def _tool_call(raw: dict[str, Any]) -> ToolCall:
    func = raw.get("function") or {}
    arguments, error = parse_arguments(func.get("arguments"))
    return ToolCall(
        id=raw.get("id") or new_call_id(),
        name=func.get("name", ""),
        arguments=arguments,
        parse_error=error,
    )


def _usage(raw: dict[str, Any] | None) -> Usage | None:
    if not raw:
        return None
    return Usage.of(raw.get("prompt_tokens"), raw.get("completion_tokens"), raw.get("total_tokens"))


def parse_response(body: dict[str, Any], model: str, *, reasoning_field: str | None = None) -> LLMResponse:
    """Parse a chat-completions body into our unified format."""
    choices = body.get("choices") or [{}]
    choice = choices[0]
    message = choice.get("message") or {}

    return LLMResponse(
        content=message.get("content") or "",
        model=body.get("model") or model,
        usage=_usage(body.get("usage")),
        tool_calls=[_tool_call(tc) for tc in message.get("tool_calls") or []],
        finish_reason=choice.get("finish_reason"),
        reasoning=(message.get(reasoning_field) or "") if reasoning_field else "",
    )


async def decode_stream(
    events: AsyncIterable[SSEEvent],
    *,
    reasoning_field: str | None = None,
) -> AsyncIterator[DeltaEvent]:
    """Decode chat-completion chunks into delta events.

    Tool calls are keyed by ``index`` in the chunks; the id only appears on
    the first fragment. A finish_reason or the ``[DONE]`` marker closes every
    open call.
    """
    ids_by_index: dict[int, str] = {}
    open_ids: list[str] = []
    finish_reason: str | None = None
    model_seen = False

    async for record in events:
        if record.data.strip() == DONE_MARKER:
            for call_id in open_ids:
                yield ToolCallEnd(call_id)
            open_ids.clear()
            yield StreamDone(finish_reason)
            return

        chunk = load_record(record, FAMILY)
        if chunk is None:
            continue

        try:
            if not model_seen and chunk.get("model"):
                model_seen = True
                yield Metadata(model=chunk["model"])

            usage = _usage(chunk.get("usage"))
            if usage is not None:
                yield Metadata(usage=usage)

            for choice in chunk.get("choices") or []:
                delta = choice.get("delta") or {}
                if reasoning_field and delta.get(reasoning_field):
                    yield ReasoningDelta(str(delta[reasoning_field]))
                if delta.get("content"):
                    yield TextDelta(str(delta["content"]))

                for raw in delta.get("tool_calls") or []:
                    index = raw.get("index", 0)
                    func = raw.get("function") or {}
                    call_id = ids_by_index.get(index)
                    if call_id is None:
                        call_id = raw.get("id") or new_call_id()
                        ids_by_index[index] = call_id
                        open_ids.append(call_id)
                        yield ToolCallStart(call_id, func.get("name", ""))
                    if func.get("arguments"):
                        arguments = func["arguments"]
                        if not isinstance(arguments, str):
                            arguments = json.dumps(arguments)
                        yield ToolCallArgsDelta(call_id, arguments)

                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]
                    for call_id in open_ids:
                        yield ToolCallEnd(call_id)
                    open_ids.clear()
        except RECORD_SHAPE_ERRORS as exc:
            skip_record(record, FAMILY, exc)

    yield StreamDone(finish_reason)
