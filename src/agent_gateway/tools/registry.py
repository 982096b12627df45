"""
Tool executor - registry and dispatch for agent tools.
"""

import time
from typing import Any

import structlog

from ..llm.base import ToolDefinition
from .base import Tool, ToolContext
from .errors import ErrorCode, parse_error_envelope, tool_error

logger = structlog.get_logger()


class ToolExecutor:
    """Registry for managing and executing tools."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        self._tools[tool.name] = tool
        logger.debug("Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.debug("Tool unregistered", tool_name=name)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self) -> list[ToolDefinition]:
        """Get all tool definitions for the LLM."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute_tool(self, name: str, arguments: dict[str, Any], context: ToolContext) -> str:
        """Execute a tool by name.

        Unknown tools and missing required parameters produce an error
        envelope, and so does any exception the tool lets escape.
        """
        tool = self.get(name)
        if tool is None:
            return tool_error(
                ErrorCode.NOT_FOUND,
                "tool_not_found",
                f"Tool '{name}' not found",
                recoverable=False,
                suggestions=[f"Available tools: {', '.join(self.list_tools())}"],
                context={"tool": name},
            )

        missing = tool.missing_required(arguments)
        if missing:
            return tool_error(
                ErrorCode.MISSING_REQUIRED,
                "missing_parameter",
                f"Missing required parameter(s) for '{name}': {', '.join(missing)}",
                suggestions=[f"Provide a value for '{param}'" for param in missing],
                context={"tool": name, "missing": missing},
            )

        logger.info("Executing tool", tool_name=name, agent=context.agent.name, arguments=arguments)
        started = time.monotonic()
        try:
            result = await tool.execute(arguments, context)
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e), exc_info=True)
            return tool_error(
                ErrorCode.BUG,
                "tool_execution_failed",
                str(e) or type(e).__name__,
                recoverable=False,
                context={"tool": name},
            )
        logger.info(
            "Tool executed",
            tool_name=name,
            duration_ms=int((time.monotonic() - started) * 1000),
            error=parse_error_envelope(result) is not None,
        )
        return result
