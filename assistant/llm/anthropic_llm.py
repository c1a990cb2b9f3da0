"""Anthropic Claude messages family with tool-use support.

Claude has no ``tool`` role: tool calls are ``tool_use`` blocks inside the
assistant content array, and results go back as ``tool_result`` blocks in a
*user* message. Adjacent canonical tool turns are merged into one such user
message. System prompts live in the top-level ``system`` field.
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
)
from assistant.llm.errors import TransportError
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
)

FAMILY = "anthropic"
API_VERSION = "2023-06-01"


def encode(
    conversation: list[Message],
    tools: list[ToolSchema],
    *,
    provider: ProviderConfig,
    model: str,
    options: RequestOptions,
    stream: bool = False,
) -> WireRequest:
    system_parts = [m.content for m in conversation if m.role == "system" and m.content]

    body: dict[str, Any] = {
        "model": model,
        "max_tokens": options.max_tokens,
        "temperature": options.temperature,
        "messages": convert_messages([m for m in conversation if m.role != "system"]),
    }
    if system_parts:
        body["system"] = "\n\n".join(system_parts)
    if tools:
        body["tools"] = convert_tools(tools)
    if stream:
        body["stream"] = True

    return WireRequest(
        url=f"{provider.base_url.rstrip('/')}/messages",
        headers={
            "x-api-key": provider.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        },
        body=body,
        stream=stream,
    )


def convert_tools(tools: list[ToolSchema]) -> list[dict[str, Any]]:
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters or {"type": "object", "properties": {}},
        }
        for tool in tools
    ]


def tool_results_of(msg: Message) -> list[dict[str, Any]]:
    """The ``tool_result`` blocks a canonical tool turn stands for."""
    batched = msg.extensions.get(FAMILY, {}).get("tool_results")
    if batched:
        entries = batched
    else:
        entries = [{
            "tool_call_id": msg.tool_call_id,
            "content": msg.content,
            "is_error": msg.is_error,
        }]

    blocks: list[dict[str, Any]] = []
    for entry in entries:
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": entry.get("tool_call_id") or "",
            "content": entry.get("content") or "",
        }
        if entry.get("is_error"):
            block["is_error"] = True
        blocks.append(block)
    return blocks


def convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert unified messages to Anthropic format."""
    result: list[dict[str, Any]] = []

    def user_blocks() -> list[dict[str, Any]] | None:
        # The previous turn, if it is a user turn already in block form.
        if result and result[-1]["role"] == "user" and isinstance(result[-1]["content"], list):
            return result[-1]["content"]
        return None

    for msg in messages:
        if msg.role == "user":
            blocks = user_blocks()
            if blocks is not None:
                blocks.append({"type": "text", "text": msg.content})
            else:
                result.append({"role": "user", "content": msg.content})

        elif msg.role == "assistant":
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append({
                    "type": "tool_use",
                    "id": tc.id,
                    "name": tc.name,
                    "input": tc.arguments,
                })
            if content:
                result.append({"role": "assistant", "content": content})

        elif msg.role == "tool":
            # Merge consecutive tool results into one user message
            blocks = user_blocks()
            if blocks is not None:
                blocks.extend(tool_results_of(msg))
            else:
                result.append({"role": "user", "content": tool_results_of(msg)})

    return result


def _result_text(content: Any) -> str:
    if isinstance(content, list):
        return "".join(b.get("text", "") for b in content if isinstance(b, dict))
    return content or ""


def decode_request(body: dict[str, Any]) -> list[Message]:
    """Rebuild the canonical conversation from an encoded request body."""
    messages: list[Message] = []
    if body.get("system"):
        messages.append(Message(role="system", content=body["system"]))

    names: dict[str, str] = {}
    for entry in body.get("messages", []):
        role = entry.get("role")
        content = entry.get("content")

        if role == "assistant" and isinstance(content, str):
            messages.append(Message(role="assistant", content=content))

        elif role == "assistant":
            text = "".join(b.get("text", "") for b in content if b.get("type") == "text")
            calls = [
                ToolCall(id=b["id"], name=b["name"], arguments=b.get("input") or {})
                for b in content if b.get("type") == "tool_use"
            ]
            names.update({tc.id: tc.name for tc in calls})
            messages.append(Message(role="assistant", content=text, tool_calls=calls))

        elif role == "user" and isinstance(content, str):
            messages.append(Message(role="user", content=content))

        elif role == "user":
            for block in content:
                if block.get("type") == "tool_result":
                    call_id = block.get("tool_use_id")
                    messages.append(Message(
                        role="tool",
                        content=_result_text(block.get("content")),
                        tool_call_id=call_id,
                        name=names.get(call_id),
                        is_error=bool(block.get("is_error")),
                    ))
                elif block.get("type") == "text":
                    messages.append(Message(role="user", content=block.get("text", "")))

    return messages


def _usage(raw: dict[str, Any] | None) -> Usage | None:
    if not raw:
        return None
    return Usage.of(raw.get("input_tokens"), raw.get("output_tokens"))


def parse_response(body: dict[str, Any], model: str) -> LLMResponse:
    """Parse an Anthropic messages body into our unified format."""
    text_parts: list[str] = []
    tool_calls: list[ToolCall] = []

    for block in body.get("content", []):
        if block.get("type") == "text":
            text_parts.append(block.get("text", ""))
        elif block.get("type") == "tool_use":
            arguments = block.get("input")
            tool_calls.append(ToolCall(
                id=block["id"],
                name=block["name"],
                arguments=arguments if isinstance(arguments, dict) else {},
            ))

    return LLMResponse(
        content="".join(text_parts),
        model=body.get("model") or model,
        usage=_usage(body.get("usage")),
        tool_calls=tool_calls,
        finish_reason=body.get("stop_reason"),
    )


async def decode_stream(events: AsyncIterable[SSEEvent]) -> AsyncIterator[DeltaEvent]:
    """Decode the messages event stream into delta events.

    Content blocks are addressed by ``index``; a tool_use block is complete
    at its ``content_block_stop``.
    """
    ids_by_index: dict[int, str] = {}
    input_tokens = 0
    stop_reason: str | None = None

    async for record in events:
        payload = load_record(record, FAMILY)
        if payload is None:
            continue
        kind = payload.get("type") or record.event

        if kind == "message_stop":
            yield StreamDone(stop_reason)
            return

        if kind == "error":
            error = payload.get("error")
            if not isinstance(error, dict):
                error = {"message": str(error or "")}
            raise TransportError(
                f"Anthropic stream error: {error.get('type', 'error')}: {error.get('message', '')}",
                provider="claude",
            )

        try:
            if kind == "message_start":
                message = payload.get("message") or {}
                usage = message.get("usage") or {}
                input_tokens = int(usage.get("input_tokens") or 0)
                yield Metadata(model=message.get("model"), usage=_usage(usage))

            elif kind == "content_block_start":
                block = payload.get("content_block") or {}
                if block.get("type") == "tool_use":
                    call_id = block["id"]
                    ids_by_index[payload.get("index", 0)] = call_id
                    yield ToolCallStart(call_id, block.get("name", ""))
                    if block.get("input"):
                        yield ToolCallArgsDelta(call_id, json.dumps(block["input"]))
                elif block.get("type") == "text" and block.get("text"):
                    yield TextDelta(str(block["text"]))

            elif kind == "content_block_delta":
                delta = payload.get("delta") or {}
                delta_type = delta.get("type")
                if delta_type == "text_delta":
                    yield TextDelta(str(delta.get("text", "")))
                elif delta_type == "input_json_delta":
                    call_id = ids_by_index.get(payload.get("index", 0))
                    if call_id is not None and delta.get("partial_json"):
                        yield ToolCallArgsDelta(call_id, str(delta["partial_json"]))
                elif delta_type == "thinking_delta":
                    yield ReasoningDelta(str(delta.get("thinking", "")))

            elif kind == "content_block_stop":
                call_id = ids_by_index.pop(payload.get("index", 0), None)
                if call_id is not None:
                    yield ToolCallEnd(call_id)

            elif kind == "message_delta":
                stop_reason = (payload.get("delta") or {}).get("stop_reason") or stop_reason
                usage = payload.get("usage") or {}
                if usage:
                    yield Metadata(usage=Usage.of(input_tokens, usage.get("output_tokens")))
        except RECORD_SHAPE_ERRORS as exc:
            skip_record(record, FAMILY, exc)

    yield StreamDone(stop_reason)
