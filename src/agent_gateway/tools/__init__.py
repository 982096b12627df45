"""
Tools module for agent capabilities.
"""

from ..config import Settings
from ..memory import MemoryStore
from ..store import DocumentStore
from .base import JsonArgument, JsonArgumentError, Tool, ToolContext, ToolParameter
from .database_tools import (
    create_database_tools,
    create_query_database_tool,
    create_raw_db_query_tool,
    create_system_stats_tool,
)
from .errors import ErrorCode, parse_error_envelope, tool_error, tool_success
from .memory_tool import create_memory_tool
from .registry import ToolExecutor
from .shell_tool import ShellConfig, ShellExecutor, create_exec_tool


def create_default_tools(
    memory: MemoryStore,
    documents: DocumentStore,
    settings: Settings | None = None,
) -> ToolExecutor:
    """Build an executor with the built-in tools registered."""
    return ToolExecutor([
        create_memory_tool(memory),
        create_exec_tool(settings),
        *create_database_tools(documents),
    ])


__all__ = [
    "ErrorCode",
    "JsonArgument",
    "JsonArgumentError",
    "ShellConfig",
    "ShellExecutor",
    "Tool",
    "ToolContext",
    "ToolExecutor",
    "ToolParameter",
    "create_database_tools",
    "create_default_tools",
    "create_exec_tool",
    "create_memory_tool",
    "create_query_database_tool",
    "create_raw_db_query_tool",
    "create_system_stats_tool",
    "parse_error_envelope",
    "tool_error",
    "tool_success",
]
