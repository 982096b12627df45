"""
LLM module for multi-provider AI model support.

Providers:
- OpenAI GPT (native SDK)
- Anthropic Claude (native SDK)
- OpenRouter (via OpenAI-compatible endpoint)
"""

from .anthropic import AnthropicLLM
from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolDefinition
from .factory import create_llm
from .gateway import LLMGateway
from .openai import OpenAILLM

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "ToolDefinition",
    "AnthropicLLM",
    "OpenAILLM",
    "LLMGateway",
    "create_llm",
]
