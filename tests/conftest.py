from __future__ import annotations

import pytest

from assistant.config import AssistantSettings
from assistant.llm.base import RequestOptions
from assistant.llm.registry import ProviderRegistry


@pytest.fixture
def settings() -> AssistantSettings:
    return AssistantSettings(
        _env_file=None,
        openai_api_key="sk-openai",
        anthropic_api_key="sk-ant",
        gemini_api_key="gm-key",
        deepseek_api_key="ds-key",
        llm_default_provider="openai",
        llm_default_model="",
        llm_max_tool_rounds=5,
    )


@pytest.fixture
def registry(settings: AssistantSettings) -> ProviderRegistry:
    return ProviderRegistry.from_settings(settings)


@pytest.fixture
def options() -> RequestOptions:
    return RequestOptions(max_tokens=256, temperature=0.2)
