"""
Shared fixtures: a throwaway SQLite database per test.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from agent_gateway.config import Settings
from agent_gateway.llm.base import LLMResponse, ToolCall
from agent_gateway.memory import MemoryStore
from agent_gateway.models import Agent, init_database
from agent_gateway.store import DocumentStore, JsonConfigStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        openrouter_api_key="test-key",
        openai_api_key="",
        anthropic_api_key="",
    )


@pytest_asyncio.fixture
async def session_maker(settings):
    maker = await init_database(settings.database_url)
    yield maker
    await maker.kw["bind"].dispose()


@pytest.fixture
def documents(session_maker):
    return DocumentStore(session_maker)


@pytest.fixture
def configs(session_maker):
    return JsonConfigStore(session_maker)


@pytest.fixture
def memory(documents, settings):
    return MemoryStore(documents, settings)


@pytest_asyncio.fixture
async def agent(session_maker):
    async with session_maker() as db:
        row = Agent(
            name="Test Bot",
            system_prompt="You are a test assistant.",
            provider_key="openrouter",
            model="openai/gpt-4o-mini",
            temperature=0.5,
            max_iterations=5,
            tools=[],
        )
        db.add(row)
        await db.commit()
        await db.refresh(row)
    return row


def text_response(content: str, total_tokens: int | None = None) -> LLMResponse:
    if total_tokens is None:
        return LLMResponse(content=content)
    return LLMResponse(
        content=content,
        input_tokens=total_tokens - 10,
        output_tokens=10,
        has_usage=True,
    )


def tool_response(*calls: tuple[str, dict], content: str = "") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[
            ToolCall(id=f"call_{i}", name=name, arguments=arguments)
            for i, (name, arguments) in enumerate(calls)
        ],
    )


def make_gateway(responses, context_length: int = 128_000) -> MagicMock:
    """A gateway double that replays canned responses."""
    gateway = MagicMock()
    gateway.generate = AsyncMock(side_effect=list(responses))
    gateway.get_model_context_length = AsyncMock(return_value=context_length)
    return gateway
