"""
Tests for configuration module.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from agent_gateway.config import Settings


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.app_name == "Agent-Gateway"
        assert settings.history_window == 20
        assert settings.compaction_threshold == 0.5
        assert settings.exec_timeout_seconds == 15
        assert settings.memory_category == "agents_memory"
        assert settings.default_context_length == 128_000
        assert settings.serialize_chat_turns is True


def test_settings_from_env():
    """Test loading settings from environment variables."""
    env = {
        "OPENROUTER_API_KEY": "test_openrouter_key",
        "HISTORY_WINDOW": "30",
        "EXEC_TIMEOUT_SECONDS": "5",
        "SERIALIZE_CHAT_TURNS": "false",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.openrouter_api_key == "test_openrouter_key"
        assert settings.history_window == 30
        assert settings.exec_timeout_seconds == 5
        assert settings.serialize_chat_turns is False


@pytest.mark.parametrize("value", ["0", "1.5", "-0.1"])
def test_compaction_threshold_validated(value):
    """Test the threshold must be a fraction of the window."""
    with patch.dict(os.environ, {"COMPACTION_THRESHOLD": value}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_history_window_validated():
    """Test the history window must be positive."""
    with pytest.raises(ValidationError):
        Settings(_env_file=None, history_window=0)


def test_get_llm_config_openrouter():
    """Test OpenRouter config carries its base URL."""
    with patch.dict(os.environ, {"OPENROUTER_API_KEY": "k"}, clear=True):
        config = Settings(_env_file=None).get_llm_config("openrouter")

        assert config.provider == "openrouter"
        assert config.api_key == "k"
        assert config.base_url == "https://openrouter.ai/api/v1"


def test_get_llm_config_openai():
    """Test getting OpenAI LLM configuration."""
    with patch.dict(os.environ, {"OPENAI_API_KEY": "test_openai_key"}, clear=True):
        config = Settings(_env_file=None).get_llm_config("openai")

        assert config.provider == "openai"
        assert config.api_key == "test_openai_key"
        assert config.base_url is None


def test_get_llm_config_unknown_provider():
    """Test unknown provider keys are rejected."""
    with patch.dict(os.environ, {}, clear=True):
        with pytest.raises(ValueError):
            Settings(_env_file=None).get_llm_config("google")
