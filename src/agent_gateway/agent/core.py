"""
Core agent runtime - the bounded, cancellable tool-calling loop.

One ``process_message`` call:
1. Ensures the agent's memory and the chat's session exist
2. Assembles the system prompt and loads the windowed history
3. Drives the LLM through up to ``agent.max_iterations`` calls, running
   requested tools strictly in order between calls
4. Records token usage, persists the turn and compacts the session when
   the context window is more than half used
"""

import asyncio
import contextlib
from dataclasses import dataclass
from typing import AsyncIterator
from uuid import uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import Settings, get_settings
from ..llm import LLMGateway, LLMMessage, LLMResponse, ToolDefinition
from ..memory import MemoryStore, sanitize_name
from ..models import Agent
from ..store import DocumentStore, JsonConfigStore
from ..tools import ToolContext, ToolExecutor, create_default_tools, parse_error_envelope
from .compaction import CompactionEngine, CompactionResult
from .history import HistoryStore
from .prompt import PromptAssembler
from .session import RenameResult, SessionManager

logger = structlog.get_logger()

DEFAULT_MAX_ITERATIONS = 10

EMPTY_ANSWER = (
    "I processed your request but have no specific response. "
    "The tool results are available in the system."
)

LAST_CHANCE_INSTRUCTION = (
    "IMPORTANT: This is your last turn. You cannot use any more tools. "
    "Using the information you have gathered so far, give the user your final "
    "answer now. DO NOT call any more tools."
)

TOOL_ERROR_INSTRUCTION = (
    "IMPORTANT: The tool returned an error. You MUST provide a friendly, "
    "conversational response to the user about this error. Do NOT show the raw "
    "error JSON to the user. Explain what went wrong in plain language and, if "
    "the error is recoverable, either retry with corrected input or suggest what "
    "the user can do next."
)


class OperationAborted(Exception):
    """Raised when the caller's abort signal is set."""

    def __init__(self, message: str = "Operation aborted"):
        super().__init__(message)


class AgentNotFoundError(LookupError):
    """Raised for an unknown agent id."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


@dataclass(frozen=True)
class LoopState:
    """Where the loop stands at the start of one iteration."""

    iteration: int
    iterations_remaining: int
    tools_allowed: bool

    @classmethod
    def for_iteration(cls, iteration: int, max_iterations: int) -> "LoopState":
        remaining = max_iterations - iteration
        return cls(iteration=iteration, iterations_remaining=remaining, tools_allowed=remaining > 0)


@dataclass
class TurnResult:
    """What a caller gets back from ``process_message``."""

    text: str
    usage: dict[str, int] | None
    chat_id: str


class AgentRuntime:
    """Runs conversations for stored agents.

    Collaborators are constructed from the session maker unless given
    explicitly.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        gateway: LLMGateway | None = None,
        settings: Settings | None = None,
        tools: ToolExecutor | None = None,
    ):
        self.settings = settings or get_settings()
        self._session_maker = session_maker

        self.documents = DocumentStore(session_maker)
        self.configs = JsonConfigStore(session_maker)
        self.memory = MemoryStore(self.documents, self.settings)
        self.history = HistoryStore(self.configs, self.settings)
        self.sessions = SessionManager(self.configs)
        self.prompts = PromptAssembler(self.documents, self.memory)
        self.gateway = gateway or LLMGateway(self.settings)
        self.tools = tools or create_default_tools(self.memory, self.documents, self.settings)
        self.compaction = CompactionEngine(self.gateway, self.memory, self.history, self.sessions)

        self._chat_locks: dict[str, asyncio.Lock] = {}
        self._chat_lock_users: dict[str, int] = {}

    # Exposed operations

    async def process_message(
        self,
        agent_id: str,
        content: str,
        sender_id: str | None = None,
        chat_id: str | None = None,
        abort: asyncio.Event | None = None,
    ) -> TurnResult:
        """Process one user message and return the agent's answer.

        Raises:
            OperationAborted: ``abort`` was set before an iteration or a tool call.
            AgentNotFoundError: no agent with ``agent_id``.
        """
        chat_id = chat_id or str(uuid4())

        async with self._chat_lock(chat_id):
            try:
                return await self._run_turn(agent_id, content, sender_id, chat_id, abort)
            except OperationAborted:
                logger.info("Agent turn aborted", agent_id=agent_id, chat_id=chat_id)
                raise
            except Exception as e:
                if "aborted" not in str(e).lower():
                    logger.error("Agent turn failed", agent_id=agent_id, chat_id=chat_id, error=str(e))
                raise

    async def compact_session(self, agent_id: str, chat_id: str) -> CompactionResult:
        agent = await self.get_agent(agent_id)
        async with self._chat_lock(chat_id):
            return await self.compaction.compact_session(agent, chat_id)

    async def rename_session(self, chat_id: str, label: str) -> RenameResult:
        return await self.sessions.rename(chat_id, label)

    async def build_system_prompt(self, agent: Agent, chat_id: str | None = None) -> str:
        return await self.prompts.build_system_prompt(agent, chat_id)

    async def get_agent(self, agent_id: str) -> Agent:
        async with self._session_maker() as db:
            result = await db.execute(select(Agent).where(Agent.id == agent_id))
            agent = result.scalar_one_or_none()
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    # Loop

    async def _run_turn(
        self,
        agent_id: str,
        content: str,
        sender_id: str | None,
        chat_id: str,
        abort: asyncio.Event | None,
    ) -> TurnResult:
        agent = await self.get_agent(agent_id)
        await self.memory.ensure_bootstrap(sanitize_name(agent.name))
        await self.sessions.get_or_create(agent.id, chat_id)

        context_length = await self.gateway.get_model_context_length(agent.model, agent.provider_key)
        system_prompt = await self.prompts.build_system_prompt(agent, chat_id)

        messages = await self.history.load(agent.id, chat_id)
        new_messages: list[LLMMessage] = []

        def add(message: LLMMessage) -> None:
            messages.append(message)
            new_messages.append(message)

        add(LLMMessage(role="user", content=content))

        executor = self._executor_for(agent)
        tool_definitions = executor.get_definitions()
        tool_context = ToolContext(agent=agent, chat_id=chat_id, metadata={"sender_id": sender_id})

        max_iterations = max(agent.max_iterations or DEFAULT_MAX_ITERATIONS, 1)
        response: LLMResponse | None = None
        answer = ""

        for iteration in range(1, max_iterations + 1):
            self._check_abort(abort)
            state = LoopState.for_iteration(iteration, max_iterations)

            response = await self._call_llm(agent, messages, system_prompt, state, tool_definitions)

            if response.tool_calls and state.tools_allowed:
                add(LLMMessage(role="assistant", content=response.content or "", tool_calls=response.tool_calls))

                for tool_call in response.tool_calls:
                    self._check_abort(abort)
                    result = await executor.execute_tool(tool_call.name, tool_call.arguments, tool_context)
                    add(LLMMessage(
                        role="tool",
                        content=result,
                        tool_call_id=tool_call.id,
                        name=tool_call.name,
                    ))
                    if parse_error_envelope(result) is not None:
                        add(LLMMessage(role="system", content=TOOL_ERROR_INSTRUCTION))
                continue

            answer = response.content or ""
            break

        text = answer if answer.strip() else EMPTY_ANSWER
        add(LLMMessage(role="assistant", content=text))

        usage = response.usage if response is not None else None
        if usage is not None:
            await self.sessions.update(chat_id, total_tokens=usage["total_tokens"])

        await self.history.append(agent.id, chat_id, new_messages)

        if usage is not None and self._needs_compaction(usage["total_tokens"], context_length):
            logger.info(
                "Context threshold exceeded, compacting",
                chat_id=chat_id,
                total_tokens=usage["total_tokens"],
                context_length=context_length,
            )
            await self.compaction.compact_session(agent, chat_id)

        return TurnResult(text=text, usage=usage, chat_id=chat_id)

    async def _call_llm(
        self,
        agent: Agent,
        messages: list[LLMMessage],
        system_prompt: str,
        state: LoopState,
        tool_definitions: list[ToolDefinition],
    ) -> LLMResponse:
        request = list(messages)
        tools: list[ToolDefinition] | None = tool_definitions or None
        if not state.tools_allowed:
            logger.warning("Last iteration reached, requesting final answer", agent=agent.name, iteration=state.iteration)
            request.append(LLMMessage(role="system", content=LAST_CHANCE_INSTRUCTION))
            tools = None

        response = await self.gateway.generate(
            agent.provider_key,
            agent.model,
            request,
            tools=tools,
            system_prompt=system_prompt,
            temperature=agent.temperature,
        )
        logger.info(
            "LLM call complete",
            agent=agent.name,
            iteration=state.iteration,
            tools_allowed=state.tools_allowed,
            tool_calls=len(response.tool_calls),
            usage=response.usage,
        )
        return response

    def _executor_for(self, agent: Agent) -> ToolExecutor:
        """The agent's tool subset; an empty list means every tool."""
        if not agent.tools:
            return self.tools
        allowed = [self.tools.get(name) for name in agent.tools]
        return ToolExecutor([tool for tool in allowed if tool is not None])

    def _needs_compaction(self, total_tokens: int, context_length: int) -> bool:
        if context_length <= 0:
            return False
        return total_tokens / context_length > self.settings.compaction_threshold

    @staticmethod
    def _check_abort(abort: asyncio.Event | None) -> None:
        if abort is not None and abort.is_set():
            raise OperationAborted()

    @contextlib.asynccontextmanager
    async def _chat_lock(self, chat_id: str) -> AsyncIterator[None]:
        """Serialize turns for one chat; the lock is dropped once nobody holds or waits on it."""
        if not self.settings.serialize_chat_turns:
            yield
            return
        lock = self._chat_locks.setdefault(chat_id, asyncio.Lock())
        self._chat_lock_users[chat_id] = self._chat_lock_users.get(chat_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._chat_lock_users[chat_id] -= 1
            if not self._chat_lock_users[chat_id]:
                del self._chat_lock_users[chat_id]
                del self._chat_locks[chat_id]
