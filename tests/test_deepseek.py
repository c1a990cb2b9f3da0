"""Tests for the DeepSeek family."""

from __future__ import annotations

import pytest

from assistant.llm import deepseek
from assistant.llm.base import Message

from helpers import decode, openai_body, sse


class TestDeepSeek:

    def test_chat_model_keeps_temperature(self, registry, options):
        request = deepseek.encode(
            [Message(role="user", content="hi")], [],
            provider=registry.get_provider("deepseek"), model="deepseek-chat", options=options,
        )
        assert request.url == "https://api.deepseek.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer ds-key"
        assert request.body["temperature"] == 0.2

    def test_reasoner_drops_temperature(self, registry, options):
        request = deepseek.encode(
            [Message(role="user", content="hi")], [],
            provider=registry.get_provider("deepseek"), model="deepseek-reasoner", options=options,
        )
        assert "temperature" not in request.body
        assert request.body["max_tokens"] == 256

    def test_reasoning_content_parsed_separately(self):
        body = openai_body("The answer is 4.", model="deepseek-reasoner")
        body["choices"][0]["message"]["reasoning_content"] = "2 + 2 = 4"
        response = deepseek.parse_response(body, "deepseek-reasoner")
        assert response.content == "The answer is 4."
        assert response.reasoning == "2 + 2 = 4"

    def test_reasoning_never_sent_back(self, registry, options):
        body = openai_body("4")
        body["choices"][0]["message"]["reasoning_content"] = "secret chain"
        turn = deepseek.parse_response(body, "deepseek-reasoner").to_message()
        request = deepseek.encode(
            [Message(role="user", content="2+2?"), turn], [],
            provider=registry.get_provider("deepseek"), model="deepseek-reasoner", options=options,
        )
        assert "secret chain" not in str(request.body)

    @pytest.mark.asyncio
    async def test_streamed_reasoning(self):
        raw = sse(
            {"model": "deepseek-reasoner", "choices": [{"index": 0, "delta": {"reasoning_content": "think "}}]},
            {"model": "deepseek-reasoner", "choices": [{"index": 0, "delta": {"reasoning_content": "more"}}]},
            {"model": "deepseek-reasoner", "choices": [{"index": 0, "delta": {"content": "done"}, "finish_reason": "stop"}]},
            "[DONE]",
        )
        response = await decode(deepseek, [raw])
        assert response.reasoning == "think more"
        assert response.content == "done"
        assert response.finish_reason == "stop"
