"""Assistant configuration.

Extends the shared Settings with provider credentials, request defaults,
the tool-round limit and the MCP servers backing the tool catalog.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.config import Settings as BaseSettings


@dataclass(frozen=True)
class MCPServerConfig:
    name: str
    url: str
    type: str = "sse"  # sse | websocket | http
    enabled: bool = True
    timeout: float | None = None  # seconds, per request; None = library defaults


class AssistantSettings(BaseSettings):
    # --- Providers (credentials live in the base settings) ---
    ollama_enabled: bool = False
    ollama_models: str = "llama3"  # comma-separated

    # --- Request defaults ---
    llm_default_provider: str = "openai"  # openai | claude | gemini | deepseek | ollama
    llm_default_model: str = ""  # empty = provider's first model
    llm_max_tokens: int = 4000
    llm_temperature: float = 0.7
    llm_max_tool_rounds: int = 10
    llm_stream: bool = True
    llm_http_timeout_seconds: float = 120.0

    # --- Tool catalog (MCP) ---
    # Comma-separated "name=url" entries, each optionally followed by
    # ";key=value" options: type=sse|websocket|http, timeout=<seconds>,
    # disabled. A leading "!" also disables the entry.
    # Example: "cms=https://cms.local/mcp/sse;timeout=30,!git=wss://git.local/mcp"
    # ws:// and wss:// URLs default to websocket, everything else to sse.
    mcp_servers: str = ""

    @property
    def ollama_model_list(self) -> list[str]:
        return [m.strip() for m in self.ollama_models.split(",") if m.strip()]

    @property
    def mcp_server_list(self) -> list[MCPServerConfig]:
        servers: list[MCPServerConfig] = []
        for entry in self.mcp_servers.split(","):
            entry = entry.strip()
            if not entry:
                continue
            servers.append(_parse_mcp_server(entry))
        return servers


MCP_SERVER_TYPES = ("sse", "websocket", "http")


def _parse_mcp_server(entry: str) -> MCPServerConfig:
    enabled = not entry.startswith("!")
    head, *options = [part.strip() for part in entry.lstrip("!").split(";")]

    name, sep, url = head.partition("=")
    if not sep:
        name, url = head, head
    name, url = name.strip(), url.strip()
    kind = "websocket" if url.startswith(("ws://", "wss://")) else "sse"
    timeout: float | None = None

    for option in options:
        if not option:
            continue
        key, _, value = option.partition("=")
        key, value = key.strip().lower(), value.strip()
        if key == "disabled":
            enabled = False
        elif key == "type":
            if value not in MCP_SERVER_TYPES:
                raise ValueError(f"MCP server {name}: unsupported type {value!r}")
            kind = value
        elif key == "timeout":
            try:
                timeout = float(value)
            except ValueError:
                raise ValueError(f"MCP server {name}: timeout must be a number, got {value!r}") from None
            if timeout <= 0:
                raise ValueError(f"MCP server {name}: timeout must be positive")
        else:
            raise ValueError(f"MCP server {name}: unknown option {key!r}")

    return MCPServerConfig(name=name, url=url, type=kind, enabled=enabled, timeout=timeout)
