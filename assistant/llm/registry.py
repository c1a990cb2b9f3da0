"""Provider registry: static configuration of known backends.

The registry is read-only once built. ``replace`` returns a new registry
with one provider changed, which is how callers toggle providers or swap
credentials at runtime.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from assistant.llm.errors import ConfigurationError

if TYPE_CHECKING:
    from assistant.config import AssistantSettings


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    family: str  # openai | deepseek | anthropic | gemini
    display_name: str
    base_url: str
    api_key: str = ""
    models: tuple[str, ...] = field(default_factory=tuple)
    enabled: bool = True
    requires_credential: bool = True

    @property
    def default_model(self) -> str | None:
        return self.models[0] if self.models else None


DEFAULT_PROVIDERS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        name="openai",
        family="openai",
        display_name="OpenAI",
        base_url="https://api.openai.com/v1",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo"),
    ),
    ProviderConfig(
        name="claude",
        family="anthropic",
        display_name="Anthropic Claude",
        base_url="https://api.anthropic.com/v1",
        models=(
            "claude-3-5-sonnet-20241022",
            "claude-3-haiku-20240307",
            "claude-3-opus-20240229",
        ),
    ),
    ProviderConfig(
        name="gemini",
        family="gemini",
        display_name="Google Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        models=("gemini-1.5-pro", "gemini-1.5-flash", "gemini-pro"),
    ),
    ProviderConfig(
        name="deepseek",
        family="deepseek",
        display_name="DeepSeek",
        base_url="https://api.deepseek.com/v1",
        models=("deepseek-chat", "deepseek-coder", "deepseek-reasoner"),
    ),
)


class ProviderRegistry:
    """Lookup and validation of configured providers."""

    def __init__(self, providers: list[ProviderConfig] | tuple[ProviderConfig, ...]) -> None:
        self._providers: dict[str, ProviderConfig] = {p.name: p for p in providers}

    @classmethod
    def from_settings(cls, settings: AssistantSettings) -> ProviderRegistry:
        keys = {
            "openai": settings.openai_api_key,
            "claude": settings.anthropic_api_key,
            "gemini": settings.gemini_api_key,
            "deepseek": settings.deepseek_api_key,
        }
        providers = [
            dataclasses.replace(p, api_key=keys.get(p.name, "")) for p in DEFAULT_PROVIDERS
        ]
        providers.append(ProviderConfig(
            name="ollama",
            family="openai",
            display_name="Ollama",
            base_url=f"{settings.ollama_url.rstrip('/')}/v1",
            models=tuple(settings.ollama_model_list),
            enabled=settings.ollama_enabled,
            requires_credential=False,
        ))
        return cls(providers)

    def get_provider(self, name: str) -> ProviderConfig | None:
        return self._providers.get(name)

    def is_enabled(self, name: str) -> bool:
        config = self._providers.get(name)
        if config is None or not config.enabled:
            return False
        return bool(config.api_key) or not config.requires_credential

    def providers(self) -> dict[str, ProviderConfig]:
        return dict(self._providers)

    def enabled_providers(self) -> list[str]:
        return [name for name in self._providers if self.is_enabled(name)]

    def models(self, name: str) -> list[str]:
        config = self._providers.get(name)
        return list(config.models) if config else []

    def replace(self, name: str, **changes) -> ProviderRegistry:
        if name not in self._providers:
            raise ConfigurationError(f"Unknown provider: {name!r}")
        updated = dict(self._providers)
        if "models" in changes:
            changes["models"] = tuple(changes["models"])
        updated[name] = dataclasses.replace(updated[name], **changes)
        return ProviderRegistry(list(updated.values()))

    def require(self, name: str, model: str | None = None) -> tuple[ProviderConfig, str]:
        """Resolve a provider/model pair or raise ``ConfigurationError``."""
        config = self._providers.get(name)
        if config is None:
            known = ", ".join(sorted(self._providers))
            raise ConfigurationError(f"Unknown LLM provider: {name!r}. Use {known}.")
        if not self.is_enabled(name):
            raise ConfigurationError(
                f"Provider {name!r} is not enabled (disabled or missing credential)"
            )
        resolved = model or config.default_model
        if not resolved:
            raise ConfigurationError(f"Provider {name!r} has no models configured")
        if config.models and resolved not in config.models:
            raise ConfigurationError(
                f"Model {resolved!r} is not available for provider {name!r}"
            )
        return config, resolved
