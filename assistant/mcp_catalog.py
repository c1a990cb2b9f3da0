"""Tool catalog backed by MCP (Model Context Protocol) servers.

Connects to one or more MCP servers over SSE, WebSocket or streamable
HTTP, aggregates their tools into one catalog and routes each call to the
server that owns the tool. Servers that fail to connect are recorded with
their error and skipped; they do not prevent the others from being used.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.client.websocket import websocket_client

from shared.log import get_logger

from assistant.config import MCPServerConfig
from assistant.llm.base import ToolOutput, ToolSchema
from assistant.llm.errors import ToolNotFoundError

logger = get_logger("tools.mcp")


@dataclass
class MCPConnection:
    config: MCPServerConfig
    session: Any = None
    tools: list[ToolSchema] = field(default_factory=list)
    connected: bool = False
    error: str | None = None
    stack: AsyncExitStack | None = None


def _schema(tool: Any) -> ToolSchema:
    return ToolSchema(
        name=tool.name,
        description=tool.description or "",
        parameters=tool.inputSchema or {"type": "object", "properties": {}},
    )


def _output(result: Any) -> ToolOutput:
    """Flatten an MCP CallToolResult into a ToolOutput."""
    structured = getattr(result, "structuredContent", None)
    texts: list[str] = []
    for item in getattr(result, "content", None) or []:
        text = getattr(item, "text", None)
        if text is not None:
            texts.append(text)
        else:
            texts.append(f"[{getattr(item, 'type', 'content')}]")
    content: Any = "\n".join(texts) if texts or structured is None else structured
    return ToolOutput(content=content, is_error=bool(getattr(result, "isError", False)))


class MCPToolCatalog:
    def __init__(self, servers: list[MCPServerConfig] | None = None) -> None:
        self._servers = list(servers or [])
        self._connections: dict[str, MCPConnection] = {}

    async def start(self) -> None:
        """Connect every enabled server; failures are logged, not raised."""
        for config in self._servers:
            if not config.enabled:
                continue
            try:
                await self.connect_server(config)
            except Exception:
                logger.exception("mcp_connect_failed", server=config.name, url=config.url)

    async def stop(self) -> None:
        for name in list(self._connections):
            await self.disconnect_server(name)

    async def _open_session(self, config: MCPServerConfig, stack: AsyncExitStack) -> Any:
        timeout = timedelta(seconds=config.timeout) if config.timeout else None
        if config.type == "sse":
            kwargs = {"timeout": config.timeout} if config.timeout else {}
            read, write = await stack.enter_async_context(sse_client(config.url, **kwargs))
        elif config.type == "websocket":
            read, write = await stack.enter_async_context(websocket_client(config.url))
        elif config.type == "http":
            kwargs = {"timeout": timeout} if timeout else {}
            read, write, _ = await stack.enter_async_context(streamablehttp_client(config.url, **kwargs))
        else:
            raise ValueError(f"Unsupported MCP server type: {config.type!r}")
        session = await stack.enter_async_context(ClientSession(read, write, read_timeout_seconds=timeout))
        await session.initialize()
        return session

    async def connect_server(self, config: MCPServerConfig) -> MCPConnection:
        if config.name in self._connections:
            await self.disconnect_server(config.name)

        connection = MCPConnection(config=config, stack=AsyncExitStack())
        self._connections[config.name] = connection
        try:
            connection.session = await self._open_session(config, connection.stack)
            listed = await connection.session.list_tools()
        except Exception as exc:
            connection.error = str(exc) or type(exc).__name__
            await connection.stack.aclose()
            connection.stack = None
            raise

        connection.tools = [_schema(t) for t in listed.tools]
        connection.connected = True
        logger.info("mcp_connected", server=config.name, tools=[t.name for t in connection.tools])
        return connection

    async def disconnect_server(self, name: str) -> None:
        connection = self._connections.pop(name, None)
        if connection is None or connection.stack is None:
            return
        try:
            await connection.stack.aclose()
        except Exception:
            logger.warning("mcp_close_failed", server=name, exc_info=True)
        logger.info("mcp_disconnected", server=name)

    async def refresh_tools(self, name: str) -> list[ToolSchema]:
        connection = self._connections.get(name)
        if connection is None or not connection.connected:
            raise ToolNotFoundError(f"MCP server {name} is not connected")
        try:
            listed = await connection.session.list_tools()
        except Exception as exc:
            connection.connected = False
            connection.error = str(exc) or "Failed to refresh tools"
            raise
        connection.tools = [_schema(t) for t in listed.tools]
        return connection.tools

    def server_status(self, name: str) -> dict[str, Any] | None:
        connection = self._connections.get(name)
        if connection is None:
            return None
        return {"connected": connection.connected, "error": connection.error}

    def _owner(self, tool_name: str) -> MCPConnection | None:
        for connection in self._connections.values():
            if connection.connected and any(t.name == tool_name for t in connection.tools):
                return connection
        return None

    async def list_tools(self) -> list[ToolSchema]:
        tools: list[ToolSchema] = []
        seen: set[str] = set()
        for connection in self._connections.values():
            if not connection.connected:
                continue
            for tool in connection.tools:
                if tool.name in seen:
                    logger.warning("mcp_tool_shadowed", tool=tool.name, server=connection.config.name)
                    continue
                seen.add(tool.name)
                tools.append(tool)
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        connection = self._owner(name)
        if connection is None:
            raise ToolNotFoundError(f"No connected MCP server provides tool {name!r}")
        try:
            result = await connection.session.call_tool(name, arguments)
        except Exception as exc:
            connection.connected = False
            connection.error = str(exc) or "Tool call failed"
            raise
        return _output(result)
