"""
LLM gateway - one entry point for every provider.

The runtime never talks to a provider SDK directly. It asks the gateway to
run a chat call for a ``(provider_key, model)`` pair and to report the
model's context window.
"""

import httpx
import structlog

from ..config import Settings, get_settings
from .base import BaseLLM, LLMMessage, LLMResponse, ToolDefinition
from .factory import create_llm

logger = structlog.get_logger()

# Fallback context windows by model family, longest prefix wins
KNOWN_CONTEXT_LENGTHS: dict[str, int] = {
    "gpt-4o": 128_000,
    "gpt-4.1": 1_047_576,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    "o1": 200_000,
    "o3": 200_000,
    "o4-mini": 200_000,
    "claude": 200_000,
    "gemini-1.5": 1_000_000,
    "gemini-2": 1_048_576,
    "llama-3": 128_000,
    "mistral": 32_000,
}


def _strip_vendor(model: str) -> str:
    return model.split("/", 1)[1] if "/" in model else model


class LLMGateway:
    """Routes chat calls to providers and resolves model metadata."""

    def __init__(self, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._http_client = http_client
        self._clients: dict[tuple[str, str], BaseLLM] = {}
        self._context_lengths: dict[str, int] = {}

    def get_client(self, provider_key: str, model: str) -> BaseLLM:
        """Get or create a provider client for a model."""
        key = (provider_key, model)
        if key not in self._clients:
            config = self.settings.get_llm_config(provider_key)
            self._clients[key] = create_llm(config, model)
            logger.info("LLM client created", provider=provider_key, model=model)
        return self._clients[key]

    async def generate(
        self,
        provider_key: str,
        model: str,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Run one chat call."""
        client = self.get_client(provider_key, model)
        return await client.generate(
            messages=messages,
            tools=tools,
            system_prompt=system_prompt,
            temperature=temperature,
        )

    async def get_model_context_length(self, model: str, provider_key: str) -> int:
        """Resolve a model's context window in tokens.

        Order: provider metadata (cached), known model families, configured default.
        """
        if model in self._context_lengths:
            return self._context_lengths[model]

        length = await self._fetch_context_length(model) if provider_key == "openrouter" else None
        if length is None:
            length = self._known_context_length(model)
        if length is None:
            length = self.settings.default_context_length

        self._context_lengths[model] = length
        return length

    def _known_context_length(self, model: str) -> int | None:
        name = _strip_vendor(model).lower()
        matches = [prefix for prefix in KNOWN_CONTEXT_LENGTHS if name.startswith(prefix)]
        if not matches:
            return None
        return KNOWN_CONTEXT_LENGTHS[max(matches, key=len)]

    async def _fetch_context_length(self, model: str) -> int | None:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self.settings.model_metadata_url)
            else:
                async with httpx.AsyncClient(timeout=self.settings.model_metadata_timeout) as client:
                    response = await client.get(self.settings.model_metadata_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Model metadata lookup failed", model=model, error=str(e))
            return None

        for entry in payload.get("data", []):
            if entry.get("id") == model:
                length = entry.get("context_length")
                if isinstance(length, int) and length > 0:
                    return length
        return None
