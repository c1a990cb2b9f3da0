"""Tests for settings and the provider registry."""

from __future__ import annotations

import pytest

from assistant.config import AssistantSettings, MCPServerConfig
from assistant.llm.errors import ConfigurationError
from assistant.llm.registry import ProviderRegistry


class TestAssistantSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LLM_MAX_TOOL_ROUNDS", raising=False)
        settings = AssistantSettings(_env_file=None)
        assert settings.llm_max_tool_rounds == 10
        assert settings.llm_default_provider == "openai"
        assert settings.mcp_server_list == []

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LLM_MAX_TOOL_ROUNDS", "3")
        monkeypatch.setenv("OLLAMA_MODELS", "llama3, mistral ,")
        settings = AssistantSettings(_env_file=None)
        assert settings.llm_max_tool_rounds == 3
        assert settings.ollama_model_list == ["llama3", "mistral"]

    def test_mcp_server_list(self):
        settings = AssistantSettings(
            _env_file=None,
            mcp_servers="cms=http://cms:8080/sse, search=wss://search/ws ,http://bare/sse",
        )
        assert settings.mcp_server_list == [
            MCPServerConfig(name="cms", url="http://cms:8080/sse", type="sse"),
            MCPServerConfig(name="search", url="wss://search/ws", type="websocket"),
            MCPServerConfig(name="http://bare/sse", url="http://bare/sse", type="sse"),
        ]

    def test_mcp_server_options(self):
        settings = AssistantSettings(
            _env_file=None,
            mcp_servers=(
                "cms=https://cms.local/mcp;type=http;timeout=30,"
                "!git=wss://git.local/mcp,"
                "search=http://search/sse; disabled ; timeout=2.5"
            ),
        )
        assert settings.mcp_server_list == [
            MCPServerConfig(name="cms", url="https://cms.local/mcp", type="http", timeout=30.0),
            MCPServerConfig(name="git", url="wss://git.local/mcp", type="websocket", enabled=False),
            MCPServerConfig(name="search", url="http://search/sse", enabled=False, timeout=2.5),
        ]

    @pytest.mark.parametrize("entry, message", [
        ("cms=http://cms/sse;type=grpc", "unsupported type"),
        ("cms=http://cms/sse;timeout=soon", "must be a number"),
        ("cms=http://cms/sse;timeout=0", "must be positive"),
        ("cms=http://cms/sse;retries=3", "unknown option"),
    ])
    def test_invalid_mcp_server_options(self, entry, message):
        settings = AssistantSettings(_env_file=None, mcp_servers=entry)
        with pytest.raises(ValueError, match=message):
            settings.mcp_server_list


class TestProviderRegistry:

    def test_enabled_providers_follow_credentials(self, settings):
        settings.deepseek_api_key = ""
        registry = ProviderRegistry.from_settings(settings)
        assert registry.enabled_providers() == ["openai", "claude", "gemini"]
        assert not registry.is_enabled("deepseek")
        assert not registry.is_enabled("ollama")
        assert not registry.is_enabled("unknown")

    def test_ollama_needs_no_credential(self, settings):
        settings.ollama_enabled = True
        registry = ProviderRegistry.from_settings(settings)
        assert registry.is_enabled("ollama")
        config, model = registry.require("ollama")
        assert model == "llama3"
        assert config.api_key == ""

    def test_models(self, registry):
        assert registry.models("deepseek") == ["deepseek-chat", "deepseek-coder", "deepseek-reasoner"]
        assert registry.models("unknown") == []

    def test_require(self, registry):
        config, model = registry.require("gemini", "gemini-1.5-flash")
        assert config.family == "gemini"
        assert model == "gemini-1.5-flash"

        with pytest.raises(ConfigurationError):
            registry.require("gemini", "gpt-4o")
        with pytest.raises(ConfigurationError):
            registry.require("nope")

    def test_provider_without_models(self, registry):
        registry = registry.replace("openai", models=[])
        with pytest.raises(ConfigurationError, match="no models"):
            registry.require("openai")

    def test_replace_returns_new_registry(self, registry):
        updated = registry.replace("claude", enabled=False, models=["claude-3-haiku-20240307"])
        assert registry.is_enabled("claude")
        assert not updated.is_enabled("claude")
        assert updated.get_provider("claude").models == ("claude-3-haiku-20240307",)

        with pytest.raises(ConfigurationError):
            registry.replace("unknown", enabled=True)
