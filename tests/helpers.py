"""Fakes and builders shared by the test modules."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, Callable
from typing import Any

from assistant.llm.base import LLMResponse, WireRequest
from assistant.llm.streaming import StreamAccumulator, iter_sse_events


class FakeTransport:
    """Transport that replays canned bodies/streams and records requests."""

    def __init__(
        self,
        bodies: list[dict[str, Any]] | None = None,
        streams: list[list[bytes]] | None = None,
        responder: Callable[[WireRequest], dict[str, Any]] | None = None,
    ) -> None:
        self.bodies = list(bodies or [])
        self.streams = list(streams or [])
        self.responder = responder
        self.requests: list[WireRequest] = []
        self.streams_closed = 0

    async def send(self, request: WireRequest) -> dict[str, Any]:
        self.requests.append(request)
        if self.responder is not None:
            return self.responder(request)
        return self.bodies.pop(0)

    async def stream(self, request: WireRequest):
        self.requests.append(request)
        try:
            for chunk in self.streams.pop(0):
                yield chunk
        finally:
            self.streams_closed += 1


def sse(*payloads: Any, named: bool = False) -> bytes:
    """Encode payloads as an SSE byte stream."""
    out: list[str] = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        if named and isinstance(payload, dict):
            out.append(f"event: {payload['type']}\n")
        out.append(f"data: {data}\n\n")
    return "".join(out).encode("utf-8")


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


async def agen(items):
    for item in items:
        yield item


async def collect(events: AsyncIterable[Any]) -> list[Any]:
    return [event async for event in events]


async def decode(module: Any, chunks: list[bytes]) -> LLMResponse:
    """Run bytes through SSE framing, a family decoder and the accumulator."""
    accumulator = StreamAccumulator(provider="test", model="requested-model")
    async for event in module.decode_stream(iter_sse_events(agen(chunks))):
        accumulator.feed(event)
    return accumulator.result()


def openai_body(
    content: str = "",
    tool_calls: list[tuple[str, str, dict[str, Any]]] | None = None,
    model: str = "gpt-4o",
) -> dict[str, Any]:
    message: dict[str, Any] = {"role": "assistant", "content": content or None}
    if tool_calls:
        message["tool_calls"] = [
            {
                "id": call_id,
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(args)},
            }
            for call_id, name, args in tool_calls
        ]
    return {
        "model": model,
        "choices": [{
            "index": 0,
            "message": message,
            "finish_reason": "tool_calls" if tool_calls else "stop",
        }],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }
