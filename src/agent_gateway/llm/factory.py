"""
LLM factory for creating provider instances.

Supports: OpenAI GPT, Anthropic Claude, OpenRouter.
"""

from ..config import LLMConfig
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .openai import OpenAILLM


def create_llm(config: LLMConfig, model: str) -> BaseLLM:
    """Create an LLM instance for a provider configuration and model.

    Provider routing:
    - anthropic -> AnthropicLLM (native Anthropic SDK)
    - openai -> OpenAILLM (native OpenAI SDK)
    - openrouter -> OpenAILLM (OpenAI-compatible endpoint)
    """
    if not config.api_key:
        raise ValueError(f"Provider '{config.provider}' is missing an API key")

    if config.provider == "anthropic":
        return AnthropicLLM(
            api_key=config.api_key,
            model=model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif config.provider in ("openai", "openrouter"):
        return OpenAILLM(
            api_key=config.api_key,
            model=model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            provider=config.provider,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {config.provider}")
