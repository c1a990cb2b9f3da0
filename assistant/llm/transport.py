"""HTTP transport for backend requests.

Issues a translated ``WireRequest`` and returns either the decoded JSON body
or the raw byte stream. Any non-success status or connection failure is
raised as ``TransportError``; retries are not attempted here.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Protocol

import httpx

from shared.log import get_logger

from assistant.llm.base import WireRequest
from assistant.llm.errors import TransportError

logger = get_logger("llm.transport")

_ERROR_BODY_LIMIT = 500


class Transport(Protocol):
    async def send(self, request: WireRequest) -> dict[str, Any]: ...

    def stream(self, request: WireRequest) -> AsyncGenerator[bytes, None]: ...


class HttpTransport:
    """Async httpx-backed transport."""

    def __init__(
        self,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def send(self, request: WireRequest) -> dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.request(
                request.method, request.url, headers=request.headers, json=request.body,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {_host(request.url)} failed: {exc}") from exc

        if resp.is_error:
            raise _status_error(resp.status_code, resp.text, request.url)
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(
                f"Response from {_host(request.url)} is not JSON", resp.status_code,
            ) from exc

    async def stream(self, request: WireRequest) -> AsyncGenerator[bytes, None]:
        client = await self._get_client()
        try:
            async with client.stream(
                request.method, request.url, headers=request.headers, json=request.body,
            ) as resp:
                if resp.is_error:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise _status_error(resp.status_code, body, request.url)
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(f"Stream from {_host(request.url)} failed: {exc}") from exc


def _host(url: str) -> str:
    return httpx.URL(url).host


def _status_error(status: int, body: str, url: str) -> TransportError:
    logger.warning("backend_error_status", host=_host(url), status=status, body=body[:_ERROR_BODY_LIMIT])
    return TransportError(
        f"{_host(url)} returned HTTP {status}: {body[:_ERROR_BODY_LIMIT]}", status,
    )
