"""Tool catalog contract and an in-process catalog.

The orchestration layer only depends on ``ToolCatalog``: list the tools the
model may call, and execute one by name. ``StaticToolCatalog`` registers
plain Python callables; ``assistant.mcp_catalog.MCPToolCatalog`` forwards to
remote MCP servers.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from shared.log import get_logger

from assistant.llm.base import ToolOutput, ToolSchema
from assistant.llm.errors import ToolNotFoundError

logger = get_logger("tools")


class ToolCatalog(Protocol):
    async def list_tools(self) -> list[ToolSchema]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput: ...


def output_text(output: ToolOutput) -> str:
    """Render a tool output as the text fed back to the model."""
    if isinstance(output.content, str):
        return output.content
    return json.dumps(output.content, ensure_ascii=False, default=str)


@dataclass
class _RegisteredTool:
    schema: ToolSchema
    handler: Callable[..., Any]


class StaticToolCatalog:
    """Catalog of locally registered Python callables.

    Usage:
        catalog = StaticToolCatalog()

        @catalog.tool(
            description="Look up a record",
            parameters={"type": "object", "properties": {"q": {"type": "string"}}},
        )
        async def lookup(q: str) -> dict:
            ...
    """

    def __init__(self) -> None:
        self._tools: dict[str, _RegisteredTool] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str = "",
        parameters: dict[str, Any] | None = None,
    ) -> None:
        schema = ToolSchema(name=name, description=description or (handler.__doc__ or "").strip())
        if parameters is not None:
            schema = ToolSchema(name=name, description=schema.description, parameters=parameters)
        self._tools[name] = _RegisteredTool(schema=schema, handler=handler)

    def tool(
        self,
        name: str | None = None,
        description: str = "",
        parameters: dict[str, Any] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.register(name or func.__name__, func, description, parameters)
            return func

        return decorator

    async def list_tools(self) -> list[ToolSchema]:
        return [t.schema for t in self._tools.values()]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        registered = self._tools.get(name)
        if registered is None:
            raise ToolNotFoundError(f"Unknown tool: {name}")

        handler = registered.handler
        # Filter out arguments the handler doesn't accept (LLMs sometimes
        # hallucinate extra parameters not in the tool schema).
        params = inspect.signature(handler).parameters
        if not any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values()):
            filtered = {k: v for k, v in arguments.items() if k in params}
            if len(filtered) != len(arguments):
                dropped = sorted(set(arguments) - set(params))
                logger.warning("tool_args_filtered", tool=name, dropped=dropped)
            arguments = filtered

        result = handler(**arguments)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, ToolOutput):
            return result
        return ToolOutput(content=result)
