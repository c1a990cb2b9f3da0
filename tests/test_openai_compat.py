"""Tests for the OpenAI-compatible family."""

from __future__ import annotations

import json

import pytest

from assistant.llm import openai_compat
from assistant.llm.base import Message, ToolCall, ToolSchema
from assistant.llm.streaming import (
    StreamDone,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnd,
    ToolCallStart,
    iter_sse_events,
)

from helpers import agen, collect, decode, openai_body, sse

LOOKUP = ToolSchema(
    name="lookup",
    description="Look something up",
    parameters={"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]},
)


def _conversation() -> list[Message]:
    return [
        Message(role="system", content="Be brief"),
        Message(role="user", content="hi"),
        Message(role="assistant", tool_calls=[ToolCall(id="t1", name="lookup", arguments={"q": "x"})]),
        Message(role="tool", content="42", tool_call_id="t1", name="lookup"),
    ]


class TestEncode:

    def test_request_shape(self, registry, options):
        request = openai_compat.encode(
            _conversation(), [LOOKUP],
            provider=registry.get_provider("openai"), model="gpt-4o", options=options,
        )
        assert request.url == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-openai"
        assert request.body["model"] == "gpt-4o"
        assert request.body["max_tokens"] == 256
        assert request.body["temperature"] == 0.2
        assert "stream" not in request.body

        messages = request.body["messages"]
        assert messages[0] == {"role": "system", "content": "Be brief"}
        assert messages[2]["content"] is None
        assert messages[2]["tool_calls"][0]["function"] == {"name": "lookup", "arguments": '{"q": "x"}'}
        assert messages[3] == {"role": "tool", "tool_call_id": "t1", "content": "42"}

        assert request.body["tools"] == [{
            "type": "function",
            "function": {"name": "lookup", "description": "Look something up", "parameters": LOOKUP.parameters},
        }]

    def test_no_tool_fields_without_tools(self, registry, options):
        request = openai_compat.encode(
            [Message(role="user", content="hi")], [],
            provider=registry.get_provider("openai"), model="gpt-4o", options=options,
        )
        assert "tools" not in request.body

    def test_streaming_request(self, registry, options):
        request = openai_compat.encode(
            [Message(role="user", content="hi")], [],
            provider=registry.get_provider("openai"), model="gpt-4o", options=options, stream=True,
        )
        assert request.stream
        assert request.body["stream"] is True
        assert request.body["stream_options"] == {"include_usage": True}

    def test_ollama_has_no_auth_header(self, registry, options):
        ollama = registry.replace("ollama", enabled=True).get_provider("ollama")
        request = openai_compat.encode(
            [Message(role="user", content="hi")], [],
            provider=ollama, model="llama3", options=options,
        )
        assert "Authorization" not in request.headers
        assert request.url == "http://ollama:11434/v1/chat/completions"

    def test_encode_does_not_mutate_input(self, registry, options):
        conversation = _conversation()
        before = [json.dumps(m.__dict__, default=str) for m in conversation]
        openai_compat.encode(
            conversation, [LOOKUP], provider=registry.get_provider("openai"), model="gpt-4o", options=options,
        )
        assert [json.dumps(m.__dict__, default=str) for m in conversation] == before


class TestParseResponse:

    def test_text_response(self):
        response = openai_compat.parse_response(openai_body("hello"), "gpt-4o")
        assert response.content == "hello"
        assert response.tool_calls == []
        assert response.usage.total_tokens == 15
        assert response.finish_reason == "stop"

    def test_tool_calls(self):
        body = openai_body(tool_calls=[("t1", "lookup", {"q": "x"}), ("t2", "lookup", {"q": "y"})])
        response = openai_compat.parse_response(body, "gpt-4o")
        assert response.content == ""
        assert [(c.id, c.arguments) for c in response.tool_calls] == [("t1", {"q": "x"}), ("t2", {"q": "y"})]

    def test_invalid_arguments(self):
        body = openai_body(tool_calls=[("t1", "lookup", {})])
        body["choices"][0]["message"]["tool_calls"][0]["function"]["arguments"] = "{not json"
        call = openai_compat.parse_response(body, "gpt-4o").tool_calls[0]
        assert call.arguments == {}
        assert call.parse_error


class TestDecodeStream:

    @pytest.mark.asyncio
    async def test_interleaved_calls_by_index(self):
        raw = sse(
            {"model": "gpt-4o", "choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "id": "a", "function": {"name": "one", "arguments": '{"x"'}},
                {"index": 1, "id": "b", "function": {"name": "two", "arguments": '{"y"'}},
            ]}}]},
            {"model": "gpt-4o", "choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 1, "function": {"arguments": ": 2}"}},
                {"index": 0, "function": {"arguments": ": 1}"}},
            ]}}]},
            {"model": "gpt-4o", "choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
            "[DONE]",
        )
        events = await collect(openai_compat.decode_stream(iter_sse_events(agen([raw]))))
        kinds = [type(e) for e in events]
        assert kinds.count(ToolCallStart) == 2
        assert kinds.count(ToolCallEnd) == 2
        assert isinstance(events[-1], StreamDone)
        assert events[-1].finish_reason == "tool_calls"

        response = await decode(openai_compat, [raw])
        assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
            ("a", "one", {"x": 1}),
            ("b", "two", {"y": 2}),
        ]

    @pytest.mark.asyncio
    async def test_done_marker_closes_open_calls(self):
        raw = sse(
            {"choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "id": "a", "function": {"name": "one", "arguments": "{}"}},
            ]}}]},
            "[DONE]",
            {"choices": [{"index": 0, "delta": {"content": "after done"}}]},
        )
        response = await decode(openai_compat, [raw])
        assert [c.id for c in response.tool_calls] == ["a"]
        assert response.content == ""

    @pytest.mark.asyncio
    async def test_exhaustion_is_completion_but_open_call_dropped(self):
        raw = sse(
            {"choices": [{"index": 0, "delta": {"content": "partial"}}]},
            {"choices": [{"index": 0, "delta": {"tool_calls": [
                {"index": 0, "id": "a", "function": {"name": "one", "arguments": '{"x": 1}'}},
            ]}}]},
        )
        events = await collect(openai_compat.decode_stream(iter_sse_events(agen([raw]))))
        assert isinstance(events[-1], StreamDone)
        response = await decode(openai_compat, [raw])
        assert response.content == "partial"
        assert response.tool_calls == []

    @pytest.mark.asyncio
    async def test_text_fragments_emitted_in_order(self):
        raw = sse(*[{"choices": [{"index": 0, "delta": {"content": c}}]} for c in "abc"], "[DONE]")
        events = await collect(openai_compat.decode_stream(iter_sse_events(agen([raw]))))
        assert [e.text for e in events if isinstance(e, TextDelta)] == ["a", "b", "c"]
        assert not any(isinstance(e, ToolCallArgsDelta) for e in events)
