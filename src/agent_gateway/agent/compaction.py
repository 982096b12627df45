"""
Session compaction - summarize a conversation into a memory snapshot.

The windowed transcript is summarized by one LLM call into a fixed
markdown shape, stored as a snapshot file in the agent's memory, and the
persisted history is replaced by a single placeholder message. The raw
transcript is discarded once summarized.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from ..llm import LLMGateway, LLMMessage
from ..memory import (
    MemoryStore,
    sanitize_name,
    snapshot_index_namespace,
    snapshot_namespace,
)
from ..models import Agent
from .history import HistoryStore
from .session import SessionManager

logger = structlog.get_logger()

SNAPSHOT_INDEX = "index"
MAX_TRANSCRIPT_ENTRY_CHARS = 4000

COMPACTION_SYSTEM_PROMPT = (
    "You are a conversation compactor. You turn transcripts into dense, "
    "factual working notes for an assistant that will continue the conversation."
)

COMPACTION_PROMPT = """Summarize the conversation below into a session snapshot.
Extract only what the assistant needs to continue the work. Be specific:
keep names, numbers, file paths, commands and outcomes. Use exactly this shape:

# Session Snapshot

## Active Goals
- ...

## Current Tasks
- ...

## Decisions
- ...

## Observations
- ...

## Constraints
- ...

Write "- none" under a heading with nothing to report.

Conversation:
{transcript}
"""


@dataclass
class CompactionResult:
    """Outcome of a compaction request."""

    success: bool
    snapshot_id: str | None = None
    message: str | None = None


def _timestamp_slug(now: datetime) -> str:
    return "snapshot-" + now.strftime("%Y%m%d-%H%M%S-%f")


def format_transcript(messages: list[LLMMessage]) -> str:
    lines = []
    for msg in messages:
        content = msg.content
        if len(content) > MAX_TRANSCRIPT_ENTRY_CHARS:
            content = content[:MAX_TRANSCRIPT_ENTRY_CHARS] + " ... (truncated)"

        if msg.tool_calls:
            calls = ", ".join(f"{tc.name}({tc.arguments})" for tc in msg.tool_calls)
            line = f"ASSISTANT [tool calls: {calls}]"
            lines.append(f"{line}: {content}" if content else line)
        elif msg.role == "tool":
            lines.append(f"TOOL RESULT: {content}")
        else:
            lines.append(f"{msg.role.upper()}: {content}")
    return "\n".join(lines)


class CompactionEngine:
    """Summarizes sessions into snapshots and truncates their history."""

    def __init__(
        self,
        gateway: LLMGateway,
        memory: MemoryStore,
        history: HistoryStore,
        sessions: SessionManager,
    ):
        self.gateway = gateway
        self.memory = memory
        self.history = history
        self.sessions = sessions

    async def compact_session(self, agent: Agent, chat_id: str) -> CompactionResult:
        """Compact one chat.

        Summarization failures propagate to the caller.
        """
        session = await self.sessions.get_or_create(agent.id, chat_id)
        prefix = sanitize_name(agent.name)
        messages = await self.history.load(agent.id, chat_id)

        if not messages:
            existing = await self.memory.list_files(snapshot_namespace(prefix, chat_id))
            if existing:
                messages = [LLMMessage(role="system", content=existing[-1].content)]
            elif session.last_snapshot_id:
                return CompactionResult(success=False, message="already compacted")
            elif session.total_tokens > 0:
                return CompactionResult(success=False, message="history expired, start a new session")
            else:
                return CompactionResult(success=False, message="nothing to compact")

        logger.info("Compaction started", agent=agent.name, chat_id=chat_id, transcript_length=len(messages))

        summary = await self.generate_snapshot(agent, messages)
        now = datetime.now(timezone.utc)
        snapshot_id = await self._store_snapshot(prefix, chat_id, summary, now)

        await self.sessions.update(chat_id, last_snapshot_id=snapshot_id, total_tokens=0)
        await self.history.replace(agent.id, chat_id, [
            LLMMessage(
                role="assistant",
                content=(
                    f"[Conversation compacted at {now.isoformat()}. "
                    f"Earlier messages were summarized into snapshot {snapshot_id}.]"
                ),
            )
        ])

        logger.info("Compaction complete", agent=agent.name, chat_id=chat_id, snapshot_id=snapshot_id)
        return CompactionResult(success=True, snapshot_id=snapshot_id)

    async def generate_snapshot(self, agent: Agent, messages: list[LLMMessage]) -> str:
        prompt = COMPACTION_PROMPT.format(transcript=format_transcript(messages))
        response = await self.gateway.generate(
            agent.provider_key,
            agent.model,
            [LLMMessage(role="user", content=prompt)],
            system_prompt=COMPACTION_SYSTEM_PROMPT,
            temperature=0.2,
        )
        return response.content.strip()

    async def _store_snapshot(self, prefix: str, chat_id: str, summary: str, now: datetime) -> str:
        namespace = snapshot_namespace(prefix, chat_id)
        slug = _timestamp_slug(now)
        await self.memory.write(namespace, slug, summary)

        filename = f"{slug}.md"
        await self.memory.append(
            snapshot_index_namespace(prefix),
            SNAPSHOT_INDEX,
            f"- {now.isoformat()} chat={chat_id} snapshot={namespace}/{filename}",
        )
        return filename
