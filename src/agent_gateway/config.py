"""
Configuration management for Agent-Gateway

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ProviderKey = Literal["openai", "anthropic", "openrouter"]


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: ProviderKey = "openrouter"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Agent-Gateway"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/agent_gateway.db",
        description="Database connection URL",
    )

    # LLM Providers (API Keys)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    max_tokens: int = 4096
    temperature: float = 0.7

    # Model metadata
    default_context_length: int = Field(
        default=128_000, description="Context window used when the model is unknown"
    )
    model_metadata_url: str = "https://openrouter.ai/api/v1/models"
    model_metadata_timeout: float = 10.0

    # Conversation
    history_window: int = Field(default=20, description="Persisted history messages kept per chat")
    compaction_threshold: float = Field(
        default=0.5, description="Fraction of the context window that triggers compaction"
    )
    serialize_chat_turns: bool = Field(
        default=True, description="Serialize concurrent turns for the same chat id"
    )

    # Memory
    memory_category: str = "agents_memory"
    search_limit: int = 20

    # Exec tool
    exec_timeout_seconds: int = Field(default=15, description="Hard kill timeout for shell commands")
    exec_max_output_chars: int = 10_000

    @field_validator("compaction_threshold")
    @classmethod
    def check_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("compaction_threshold must be in (0, 1]")
        return v

    @field_validator("history_window")
    @classmethod
    def check_history_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_window must be positive")
        return v

    def get_llm_config(self, provider: str) -> LLMConfig:
        """Get LLM configuration for a provider key."""
        api_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "openrouter": self.openrouter_api_key,
        }

        base_url_map = {
            "openai": None,
            "anthropic": None,
            "openrouter": self.openrouter_base_url,
        }

        if provider not in api_key_map:
            raise ValueError(f"Unknown LLM provider: {provider}")

        return LLMConfig(
            provider=provider,  # type: ignore
            api_key=api_key_map[provider],
            base_url=base_url_map[provider],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
