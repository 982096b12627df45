"""
Session management for conversations.

A session is a small metadata record per chat id (token usage, the last
snapshot, an optional label). It is created lazily on the first message
and never deleted; a new conversation simply uses a new chat id.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..store import JsonConfigStore, stable_slug

logger = structlog.get_logger()

SESSION_KEY_PREFIX = "agent-session-"


def session_key(chat_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{stable_slug(chat_id)}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AgentSession(BaseModel):
    """Per-conversation metadata."""

    chat_id: str
    agent_id: str
    status: str = "active"
    last_snapshot_id: str | None = None
    total_tokens: int = 0
    label: str | None = None
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)


@dataclass
class RenameResult:
    success: bool
    label: str | None = None
    message: str | None = None


class SessionManager:
    """Creates, updates and lists session records."""

    def __init__(self, configs: JsonConfigStore):
        self.configs = configs

    async def get(self, chat_id: str) -> AgentSession | None:
        payload = await self.configs.get(session_key(chat_id))
        if payload is None:
            return None
        try:
            return AgentSession.model_validate(payload)
        except ValidationError as e:
            logger.warning("Invalid session record", chat_id=chat_id, error=str(e))
            return None

    async def get_or_create(self, agent_id: str, chat_id: str) -> AgentSession:
        session = await self.get(chat_id)
        if session is not None:
            return session

        session = AgentSession(chat_id=chat_id, agent_id=agent_id)
        await self._save(session)
        logger.info("Created new session", agent_id=agent_id, chat_id=chat_id)
        return session

    async def update(self, chat_id: str, **patch: Any) -> AgentSession | None:
        """Merge fields into an existing session.

        Updating a session that does not exist is a no-op and returns None.
        """
        session = await self.get(chat_id)
        if session is None:
            logger.debug("Session update skipped, no record", chat_id=chat_id)
            return None

        updated = session.model_copy(update={**patch, "updated_at": _now()})
        await self._save(updated)
        return updated

    async def rename(self, chat_id: str, label: str) -> RenameResult:
        label = (label or "").strip()
        if not label:
            return RenameResult(success=False, message="Label must not be empty")

        updated = await self.update(chat_id, label=label)
        if updated is None:
            return RenameResult(success=False, message=f"Session '{chat_id}' not found")

        logger.info("Session renamed", chat_id=chat_id, label=label)
        return RenameResult(success=True, label=label)

    async def list_sessions(self, agent_id: str | None = None, limit: int = 20) -> list[AgentSession]:
        """Recent sessions, most recently updated first."""
        # Over-fetch so filtering by agent still fills the page
        fetch = limit if agent_id is None else limit * 5
        sessions = []
        for payload in await self.configs.list_by_prefix(SESSION_KEY_PREFIX, limit=fetch):
            try:
                session = AgentSession.model_validate(payload)
            except ValidationError:
                continue
            if agent_id is not None and session.agent_id != agent_id:
                continue
            sessions.append(session)
        return sessions[:limit]

    async def _save(self, session: AgentSession) -> None:
        await self.configs.put(
            session_key(session.chat_id),
            session.model_dump(),
            title=session.label or f"Session {session.chat_id}",
        )
