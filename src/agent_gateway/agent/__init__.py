"""
Agent module - the conversation runtime.

Includes:
- AgentRuntime: the bounded, cancellable tool-calling loop
- SessionManager: per-chat metadata records
- HistoryStore: windowed conversation log
- PromptAssembler: rules + memory + persona system prompt
- CompactionEngine: session snapshots and history truncation
"""

from .compaction import CompactionEngine, CompactionResult
from .core import (
    AgentNotFoundError,
    AgentRuntime,
    LoopState,
    OperationAborted,
    TurnResult,
)
from .history import HistoryStore
from .prompt import PromptAssembler
from .session import AgentSession, RenameResult, SessionManager

__all__ = [
    "AgentNotFoundError",
    "AgentRuntime",
    "AgentSession",
    "CompactionEngine",
    "CompactionResult",
    "HistoryStore",
    "LoopState",
    "OperationAborted",
    "PromptAssembler",
    "RenameResult",
    "SessionManager",
    "TurnResult",
]
