"""Diagnostic tool for the assistant backend.

Tests configuration, providers, a live model round trip and MCP tool
discovery step by step, instead of debugging through the full panel.

Usage:
    assistant-diagnose
    assistant-diagnose --step config
    assistant-diagnose --step providers
    assistant-diagnose --step llm --provider claude --prompt "Reply with exactly: OK"
    assistant-diagnose --step tools
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import traceback

from shared.log import setup_logging

PASS = "\033[92m PASS \033[0m"
FAIL = "\033[91m FAIL \033[0m"
WARN = "\033[93m WARN \033[0m"
INFO = "\033[94m INFO \033[0m"


def header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _detail(detail: str) -> None:
    for line in detail.strip().split("\n"):
        print(f"         {line}")


def result(label: str, ok: bool, detail: str = "") -> None:
    print(f"  [{PASS if ok else FAIL}] {label}")
    if detail:
        _detail(detail)


def info(label: str, detail: str = "") -> None:
    print(f"  [{INFO}] {label}")
    if detail:
        _detail(detail)


def warn(label: str, detail: str = "") -> None:
    print(f"  [{WARN}] {label}")
    if detail:
        _detail(detail)


def _mask(secret: str) -> str:
    return secret[:6] + "..." if secret else "(empty)"


# -- Step: Config ──────────────────────────────────────────────

def check_config():
    header("Configuration")
    try:
        from assistant.config import AssistantSettings

        s = AssistantSettings()
        result("Config loaded", True)
        checks = {
            "LLM_DEFAULT_PROVIDER": s.llm_default_provider,
            "LLM_DEFAULT_MODEL": s.llm_default_model or "(provider default)",
            "LLM_MAX_TOOL_ROUNDS": str(s.llm_max_tool_rounds),
            "LLM_STREAM": str(s.llm_stream),
            "OPENAI_API_KEY": _mask(s.openai_api_key),
            "ANTHROPIC_API_KEY": _mask(s.anthropic_api_key),
            "GEMINI_API_KEY": _mask(s.gemini_api_key),
            "DEEPSEEK_API_KEY": _mask(s.deepseek_api_key),
            "MCP_SERVERS": s.mcp_servers or "(none)",
        }
        for key, val in checks.items():
            print(f"         {key} = {val}")
        return s
    except Exception:
        result("Config loaded", False, traceback.format_exc())
        return None


# -- Step: Providers ───────────────────────────────────────────

def check_providers(settings) -> None:
    header("Providers")
    from assistant.llm.registry import ProviderRegistry

    registry = ProviderRegistry.from_settings(settings)
    for name, config in registry.providers().items():
        enabled = registry.is_enabled(name)
        detail = f"{config.display_name} @ {config.base_url}\nModels: {', '.join(config.models) or '(none)'}"
        if enabled:
            result(name, True, detail)
        else:
            warn(f"{name} disabled", detail)

    if not registry.is_enabled(settings.llm_default_provider):
        warn(f"Default provider {settings.llm_default_provider!r} is not enabled")


# -- Step: LLM round trip ──────────────────────────────────────

async def check_llm(settings, provider: str | None, model: str | None, prompt: str) -> None:
    header("LLM Round Trip")
    from assistant.llm import HttpTransport, create_tool_loop
    from assistant.llm.base import Message
    from assistant.llm.streaming import TextDelta

    transport = HttpTransport(timeout=settings.llm_http_timeout_seconds)
    loop = create_tool_loop(settings, transport=transport)
    chunks: list[str] = []

    def on_delta(event) -> None:
        if isinstance(event, TextDelta):
            chunks.append(event.text)

    try:
        response = await loop.send_message(
            [Message(role="user", content=prompt)],
            provider=provider,
            model=model,
            on_delta=on_delta if settings.llm_stream else None,
        )
        usage = response.usage
        detail = f"Provider: {response.provider}  Model: {response.model}\nResponse: {response.content[:200]}"
        if usage:
            detail += f"\nTokens: {usage.input_tokens} in / {usage.output_tokens} out"
        if settings.llm_stream:
            detail += f"\nStreamed fragments: {len(chunks)}"
        result("LLM response", bool(response.content), detail)
    except Exception:
        result("LLM response", False, traceback.format_exc())
    finally:
        await transport.close()


# -- Step: Tools (MCP) ─────────────────────────────────────────

async def check_tools(settings) -> None:
    header("MCP Tools")
    servers = settings.mcp_server_list
    if not servers:
        warn("MCP_SERVERS not set, skipping")
        return

    from assistant.mcp_catalog import MCPToolCatalog

    catalog = MCPToolCatalog(servers)
    try:
        for server in servers:
            try:
                connection = await catalog.connect_server(server)
                names = ", ".join(t.name for t in connection.tools) or "(no tools)"
                result(f"{server.name} ({server.type})", True, f"{server.url}\nTools: {names}")
            except Exception as e:
                result(f"{server.name} ({server.type})", False, f"{server.url}\n{e}")
        info(f"Catalog exposes {len(await catalog.list_tools())} tool(s)")
    finally:
        await catalog.stop()


# -- Main ──────────────────────────────────────────────────────

async def run(args: argparse.Namespace) -> int:
    print("\n" + "=" * 60)
    print("  ASSISTANT — DIAGNOSTIC TOOL")
    print("=" * 60)

    settings = check_config()
    if settings is None:
        print("\n  Cannot proceed without valid config. Fix .env first.")
        return 1

    if args.step in ("all", "providers"):
        check_providers(settings)

    if args.step in ("all", "llm"):
        await check_llm(settings, args.provider, args.model, args.prompt)

    if args.step in ("all", "tools"):
        await check_tools(settings)

    print(f"\n{'='*60}")
    print("  DONE")
    print(f"{'='*60}\n")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Assistant diagnostic tool")
    parser.add_argument(
        "--step",
        choices=["config", "providers", "llm", "tools", "all"],
        default="all",
        help="Which check to run (default: all)",
    )
    parser.add_argument("--provider", default=None, help="Provider for the llm step")
    parser.add_argument("--model", default=None, help="Model for the llm step")
    parser.add_argument("--prompt", default="Reply with exactly: OK", help="Prompt for the llm step")
    args = parser.parse_args()

    setup_logging("DEBUG", "console")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
