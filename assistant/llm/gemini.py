"""Google Gemini generateContent family with function-calling support."""

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
)

FAMILY = "gemini"

_WRAPPER_KEYS = ({"result"}, {"error"})


def encode(
    conversation: list[Message],
    tools: list[ToolSchema],
    *,
    provider: ProviderConfig,
    model: str,
    options: RequestOptions,
    stream: bool = False,
) -> WireRequest:
    system_parts = [
        {"text": m.content} for m in conversation if m.role == "system" and m.content
    ]

    body: dict[str, Any] = {
        "contents": build_contents([m for m in conversation if m.role != "system"]),
        "generationConfig": {
            "maxOutputTokens": options.max_tokens,
            "temperature": options.temperature,
        },
    }
    if system_parts:
        body["systemInstruction"] = {"parts": system_parts}
    if tools:
        body["tools"] = convert_tools(tools)

    base = f"{provider.base_url.rstrip('/')}/models/{model}"
    url = f"{base}:streamGenerateContent?alt=sse" if stream else f"{base}:generateContent"
    return WireRequest(
        url=url,
        headers={
            "Content-Type": "application/json",
            "x-goog-api-key": provider.api_key,
        },
        body=body,
        stream=stream,
    )


# ------------------------------------------------------------------
# Internal conversions
# ------------------------------------------------------------------


def convert_tools(tools: list[ToolSchema]) -> list[dict[str, Any]]:
    """Convert tool schemas to Gemini function declarations."""
    declarations: list[dict[str, Any]] = []
    for tool in tools:
        decl: dict[str, Any] = {
            "name": tool.name,
            "description": tool.description,
        }
        if tool.parameters and tool.parameters.get("properties"):
            decl["parameters"] = convert_schema(tool.parameters)
        declarations.append(decl)
    return [{"functionDeclarations": declarations}]


def convert_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Recursively convert JSON Schema to Gemini's OpenAPI subset."""
    result: dict[str, Any] = {}
    kind = schema.get("type")
    if isinstance(kind, list):
        non_null = [k for k in kind if k != "null"]
        if len(non_null) != len(kind):
            result["nullable"] = True
        kind = non_null[0] if non_null else "string"
    if kind:
        result["type"] = kind.upper()
    for key in ("description", "enum", "format", "required", "nullable"):
        if key in schema:
            result[key] = schema[key]
    if "properties" in schema:
        result["properties"] = {
            k: convert_schema(v) for k, v in schema["properties"].items()
        }
    if "items" in schema:
        result["items"] = convert_schema(schema["items"])
    return result


def _response_payload(msg: Message) -> dict[str, Any]:
    # functionResponse.response must be an object. A result is sent as a bare
    # object only when the text is exactly its serialization and cannot be
    # mistaken for a wrapper, so decode_request restores it unchanged.
    if msg.is_error:
        return {"error": msg.content}
    try:
        data = json.loads(msg.content) if msg.content else None
    except (json.JSONDecodeError, TypeError):
        data = None
    if (
        isinstance(data, dict)
        and set(data) not in _WRAPPER_KEYS
        and json.dumps(data, ensure_ascii=False) == msg.content
    ):
        return data
    return {"result": msg.content}


def build_contents(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert unified messages to Gemini contents format."""
    contents: list[dict[str, Any]] = []
    names: dict[str, str] = {}

    for msg in messages:
        if msg.role == "user":
            contents.append({"role": "user", "parts": [{"text": msg.content}]})

        elif msg.role == "assistant":
            parts: list[dict[str, Any]] = []
            if msg.content:
                parts.append({"text": msg.content})
            for tc in msg.tool_calls:
                names[tc.id] = tc.name
                parts.append({
                    "functionCall": {"id": tc.id, "name": tc.name, "args": tc.arguments},
                })
            if parts:
                contents.append({"role": "model", "parts": parts})

        elif msg.role == "tool":
            # Gemini expects function responses as user-role messages
            response: dict[str, Any] = {
                "name": msg.name or names.get(msg.tool_call_id or "", "unknown"),
                "response": _response_payload(msg),
            }
            if msg.tool_call_id:
                response["id"] = msg.tool_call_id
            part = {"functionResponse": response}
            previous = contents[-1] if contents else None
            if previous and previous["role"] == "user" and "functionResponse" in previous["parts"][-1]:
                previous["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})

    return contents


def _tool_message(response: dict[str, Any]) -> Message:
    payload = response.get("response") or {}
    is_error = set(payload) == {"error"}
    if is_error or (set(payload) == {"result"} and isinstance(payload["result"], str)):
        content = str(next(iter(payload.values())))
    else:
        content = json.dumps(payload, ensure_ascii=False)
    return Message(
        role="tool",
        content=content,
        tool_call_id=response.get("id"),
        name=response.get("name"),
        is_error=is_error,
    )


def decode_request(body: dict[str, Any]) -> list[Message]:
    """Rebuild the canonical conversation from an encoded request body."""
    messages: list[Message] = []
    system = body.get("systemInstruction")
    if system:
        messages.append(Message(
            role="system", content="".join(p.get("text", "") for p in system.get("parts", [])),
        ))

    for entry in body.get("contents", []):
        parts = entry.get("parts", [])
        if entry.get("role") == "model":
            messages.append(Message(
                role="assistant",
                content="".join(p.get("text", "") for p in parts if "text" in p),
                tool_calls=[_tool_call(p["functionCall"]) for p in parts if "functionCall" in p],
            ))
            continue
        for part in parts:
            if "functionResponse" in part:
                messages.append(_tool_message(part["functionResponse"]))
            elif "text" in part:
                messages.append(Message(role="user", content=part["text"]))

    return messages


def _tool_call(raw: dict[str, Any]) -> ToolCall:
    args = raw.get("args")
    return ToolCall(
        id=raw.get("id") or new_call_id(),
        name=raw.get("name", ""),
        arguments=dict(args) if isinstance(args, dict) else {},
    )


def _usage(raw: dict[str, Any] | None) -> Usage | None:
    if not raw:
        return None
    return Usage.of(
        raw.get("promptTokenCount"), raw.get("candidatesTokenCount"), raw.get("totalTokenCount"),
    )


def parse_response(body: dict[str, Any], model: str) -> LLMResponse:
    """Parse a generateContent body into our unified format."""
    tool_calls: list[ToolCall] = []
    text_parts: list[str] = []
    thoughts: list[str] = []

    candidates = body.get("candidates") or [{}]
    candidate = candidates[0]
    for part in (candidate.get("content") or {}).get("parts", []):
        if "functionCall" in part:
            tool_calls.append(_tool_call(part["functionCall"]))
        elif part.get("thought"):
            thoughts.append(part.get("text", ""))
        elif "text" in part:
            text_parts.append(part["text"])

    return LLMResponse(
        content="".join(text_parts),
        model=body.get("modelVersion") or model,
        usage=_usage(body.get("usageMetadata")),
        tool_calls=tool_calls,
        finish_reason=candidate.get("finishReason"),
        reasoning="".join(thoughts),
    )


async def decode_stream(events: AsyncIterable[SSEEvent]) -> AsyncIterator[DeltaEvent]:
    """Decode ``alt=sse`` chunks into delta events.

    Gemini sends each functionCall whole, so start, arguments and end are
    emitted together. There is no end-of-stream marker; exhaustion ends it.
    """
    finish_reason: str | None = None
    model_seen = False

    async for record in events:
        chunk = load_record(record, FAMILY)
        if chunk is None:
            continue

        try:
            if not model_seen and chunk.get("modelVersion"):
                model_seen = True
                yield Metadata(model=chunk["modelVersion"])

            for candidate in (chunk.get("candidates") or [])[:1]:
                for part in (candidate.get("content") or {}).get("parts", []):
                    if "functionCall" in part:
                        call = _tool_call(part["functionCall"])
                        yield ToolCallStart(call.id, call.name)
                        yield ToolCallArgsDelta(call.id, json.dumps(call.arguments))
                        yield ToolCallEnd(call.id)
                    elif part.get("thought"):
                        yield ReasoningDelta(str(part.get("text", "")))
                    elif part.get("text"):
                        yield TextDelta(str(part["text"]))
                if candidate.get("finishReason"):
                    finish_reason = candidate["finishReason"]

            usage = _usage(chunk.get("usageMetadata"))
            if usage is not None:
                yield Metadata(usage=usage)
        except RECORD_SHAPE_ERRORS as exc:
            skip_record(record, FAMILY, exc)

    yield StreamDone(finish_reason)
