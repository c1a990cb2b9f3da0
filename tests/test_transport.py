"""Tests for the httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from assistant.llm.base import WireRequest
from assistant.llm.errors import TransportError
from assistant.llm.transport import HttpTransport

REQUEST = WireRequest(
    url="https://api.example.test/v1/chat/completions",
    headers={"Authorization": "Bearer sk-test"},
    body={"model": "m", "messages": []},
)


def _transport(handler) -> HttpTransport:
    return HttpTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_send_returns_json_body():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    transport = _transport(handler)
    assert await transport.send(REQUEST) == {"ok": True}
    assert seen[0].method == "POST"
    assert seen[0].headers["Authorization"] == "Bearer sk-test"
    assert json.loads(seen[0].content) == REQUEST.body
    await transport.close()


@pytest.mark.asyncio
async def test_error_status_raises_with_code():
    transport = _transport(lambda request: httpx.Response(429, text="rate limited"))
    with pytest.raises(TransportError) as excinfo:
        await transport.send(REQUEST)
    assert excinfo.value.status_code == 429
    assert "rate limited" in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_body_raises():
    transport = _transport(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(TransportError, match="not JSON"):
        await transport.send(REQUEST)


@pytest.mark.asyncio
async def test_connection_failure_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError, match="api.example.test"):
        await _transport(handler).send(REQUEST)


@pytest.mark.asyncio
async def test_stream_yields_bytes():
    transport = _transport(lambda request: httpx.Response(200, content=b"data: a\n\ndata: b\n\n"))
    chunks = [chunk async for chunk in transport.stream(REQUEST)]
    assert b"".join(chunks) == b"data: a\n\ndata: b\n\n"


@pytest.mark.asyncio
async def test_stream_error_status_raises():
    transport = _transport(lambda request: httpx.Response(500, text="upstream down"))
    with pytest.raises(TransportError) as excinfo:
        async for _ in transport.stream(REQUEST):
            pass
    assert excinfo.value.status_code == 500
    assert "upstream down" in str(excinfo.value)
