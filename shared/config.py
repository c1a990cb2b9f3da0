"""Central configuration loaded from environment variables / .env file.

The assistant settings inherit these base settings. Components that need
more fields extend by subclassing Settings.

Usage:
    from shared.config import Settings
    settings = Settings()
    print(settings.log_level)

To extend:
    from shared.config import Settings as BaseSettings

    class MySettings(BaseSettings):
        my_custom_var: str = "default"
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Provider credentials (empty = provider disabled) ---
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    deepseek_api_key: str = ""
    ollama_url: str = "http://ollama:11434"  # no credential needed

    # --- General ---
    log_level: str = "INFO"
    log_format: str = "auto"  # auto | json | console
