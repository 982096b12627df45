"""
Conversation history persisted per (agent, chat).

The log is append-only from the loop's point of view but is always read
back windowed to the most recent entries.
"""

from datetime import datetime, timezone
from typing import Any

import structlog

from ..config import Settings, get_settings
from ..llm import LLMMessage
from ..store import JsonConfigStore, stable_slug

logger = structlog.get_logger()


def history_key(agent_id: str, chat_id: str) -> str:
    return f"agent-history-{stable_slug(agent_id)}-{stable_slug(chat_id)}"


def _window(items: list, size: int, role_of) -> list:
    """The last ``size`` items, never starting inside a tool exchange."""
    kept = items[-size:]
    start = 0
    # Tool results and the nudges that follow them need their assistant tool_calls
    while start < len(kept) and role_of(kept[start]) in ("tool", "system"):
        start += 1
    return kept[start:]


class HistoryStore:
    """Windowed message log on top of the JSON config store."""

    def __init__(self, configs: JsonConfigStore, settings: Settings | None = None):
        self.configs = configs
        self.window = (settings or get_settings()).history_window

    async def load(self, agent_id: str, chat_id: str) -> list[LLMMessage]:
        record = await self.configs.get(history_key(agent_id, chat_id))
        if not record:
            return []

        messages = []
        items = [item for item in (record.get("history") or []) if isinstance(item, dict)]
        for item in _window(items, self.window, lambda item: item.get("role")):
            try:
                messages.append(LLMMessage.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed history entry", chat_id=chat_id)
        return messages

    async def save(self, agent_id: str, chat_id: str, messages: list[LLMMessage]) -> None:
        """Replace the stored log with the last ``window`` messages."""
        kept = _window(list(messages), self.window, lambda m: m.role)
        payload: dict[str, Any] = {
            "agentId": agent_id,
            "chatId": chat_id,
            "history": [m.to_dict() for m in kept],
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "size": len(kept),
        }
        await self.configs.put(
            history_key(agent_id, chat_id),
            payload,
            title=f"History {agent_id}/{chat_id}",
        )

    async def append(self, agent_id: str, chat_id: str, messages: list[LLMMessage]) -> None:
        if not messages:
            return
        existing = await self.load(agent_id, chat_id)
        await self.save(agent_id, chat_id, existing + list(messages))

    async def replace(self, agent_id: str, chat_id: str, messages: list[LLMMessage]) -> None:
        await self.save(agent_id, chat_id, messages)
