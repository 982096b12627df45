"""
Tests for LLM types, provider adapters and the gateway.
"""

import httpx
import pytest

from agent_gateway.llm import AnthropicLLM, LLMGateway, create_llm
from agent_gateway.llm.base import LLMMessage, LLMResponse, ToolCall
from agent_gateway.llm.openai import OpenAILLM, parse_arguments


def test_parse_arguments():
    """Test tool-call argument text parsing."""
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("{broken") == {}
    assert parse_arguments("[1, 2]") == {}
    assert parse_arguments(None) == {}


def test_llm_response_usage():
    """Test usage is only reported when the provider sent it."""
    assert LLMResponse(content="x").usage is None
    usage = LLMResponse(content="x", input_tokens=7, output_tokens=3, has_usage=True).usage
    assert usage == {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}


def test_message_serialization_keeps_tool_fields():
    """Test history serialization of tool traffic."""
    message = LLMMessage(
        role="assistant",
        content="",
        tool_calls=[ToolCall(id="c1", name="exec", arguments={"command": "ls"})],
    )
    data = message.to_dict()
    assert data["tool_calls"] == [{"id": "c1", "name": "exec", "arguments": {"command": "ls"}}]
    assert LLMMessage.from_dict(data).tool_calls[0].arguments == {"command": "ls"}
    assert "tool_call_id" not in data


def test_create_llm_routes_providers(settings):
    """Test provider keys map to adapters."""
    assert isinstance(create_llm(settings.get_llm_config("openrouter"), "openai/gpt-4o"), OpenAILLM)

    anthropic_config = settings.model_copy(update={"anthropic_api_key": "k"}).get_llm_config("anthropic")
    assert isinstance(create_llm(anthropic_config, "claude-sonnet-4"), AnthropicLLM)


def test_create_llm_requires_api_key(settings):
    """Test a missing key is a configuration error."""
    with pytest.raises(ValueError):
        create_llm(settings.get_llm_config("openai"), "gpt-4o")


def test_openai_converts_tool_messages():
    """Test tool traffic in chat-completions format."""
    llm = OpenAILLM(api_key="k")
    converted = llm._convert_messages([
        LLMMessage(role="assistant", content="", tool_calls=[ToolCall(id="c1", name="memory", arguments={"a": 1})]),
        LLMMessage(role="tool", content="{}", tool_call_id="c1"),
        LLMMessage(role="system", content="be nice"),
    ])
    assert converted[0]["tool_calls"][0]["function"]["arguments"] == '{"a": 1}'
    assert converted[1] == {"role": "tool", "tool_call_id": "c1", "content": "{}"}
    assert converted[2] == {"role": "system", "content": "be nice"}


def test_anthropic_merges_tool_results_and_system_nudges():
    """Test mid-conversation system messages fold into user turns."""
    llm = AnthropicLLM(api_key="k")
    converted = llm._convert_messages([
        LLMMessage(role="user", content="hi"),
        LLMMessage(role="assistant", content="", tool_calls=[ToolCall(id="t1", name="memory", arguments={})]),
        LLMMessage(role="tool", content="{}", tool_call_id="t1"),
        LLMMessage(role="system", content="be nice"),
    ])
    assert [m["role"] for m in converted] == ["user", "assistant", "user"]
    assert converted[2]["content"][0]["type"] == "tool_result"
    assert converted[2]["content"][1]["text"] == "[System instruction] be nice"


@pytest.mark.asyncio
async def test_context_length_from_metadata(settings):
    """Test OpenRouter metadata is used and cached."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"data": [{"id": "acme/model-x", "context_length": 32768}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = LLMGateway(settings, http_client=client)
        assert await gateway.get_model_context_length("acme/model-x", "openrouter") == 32768
        assert await gateway.get_model_context_length("acme/model-x", "openrouter") == 32768
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_context_length_fallbacks(settings):
    """Test known families, then the configured default."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        gateway = LLMGateway(settings, http_client=client)
        assert await gateway.get_model_context_length("anthropic/claude-3.5-sonnet", "openrouter") == 200_000
        assert await gateway.get_model_context_length("gpt-4o-mini", "openai") == 128_000
        assert await gateway.get_model_context_length("mystery-model", "openai") == settings.default_context_length
