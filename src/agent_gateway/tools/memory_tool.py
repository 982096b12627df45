"""
Memory tool - the agent's interface to its virtual filesystem.

All operations are scoped to the calling agent's namespace; an optional
``subfolder`` selects ``<agent>__<subfolder>``.
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..memory import (
    InvalidFilenameError,
    MemoryNotFoundError,
    MemoryStore,
    MemoryWriteError,
    resolve_namespace,
)
from .base import Tool, ToolContext, ToolParameter
from .errors import ErrorCode, tool_error, tool_success

logger = structlog.get_logger()

ACTIONS = ["list", "read", "write", "append", "search"]


def create_memory_tool(memory: MemoryStore) -> Tool:
    """Create the memory tool bound to a memory store."""

    async def _list(context: ToolContext, subfolder: str) -> str:
        namespace = resolve_namespace(context.agent_prefix, subfolder)
        files = await memory.list_files(namespace)
        payload: dict[str, Any] = {
            "subfolder": subfolder or "/",
            "files": [
                {"filename": f.filename, "title": f.title, "size": len(f.content.encode("utf-8"))}
                for f in files
            ],
        }
        if not subfolder:
            payload["subfolders"] = await memory.list_subfolders(context.agent_prefix)
        return tool_success(payload)

    async def _read(context: ToolContext, subfolder: str, filename: str) -> str:
        namespace = resolve_namespace(context.agent_prefix, subfolder)
        content = await memory.read(namespace, filename)
        return tool_success({"filename": filename, "subfolder": subfolder or "/", "content": content})

    async def _write(context: ToolContext, subfolder: str, filename: str, content: str, append: bool) -> str:
        namespace = resolve_namespace(context.agent_prefix, subfolder)
        if append:
            ack = await memory.append(namespace, filename, content)
        else:
            ack = await memory.write(namespace, filename, content)
        return tool_success({
            "success": True,
            "action": "append" if append else "write",
            "filename": filename,
            "subfolder": subfolder or "/",
            "size": ack.size,
            "version": ack.version,
        })

    async def _search(context: ToolContext, query: str) -> str:
        hits = await memory.search(context.agent_prefix, query)
        return tool_success({
            "query": query,
            "count": len(hits),
            "results": [
                {
                    "subfolder": hit.subfolder or "/",
                    "filename": hit.filename,
                    "title": hit.title,
                    "snippet": hit.snippet,
                }
                for hit in hits
            ],
        })

    async def memory_handler(args: dict[str, Any], context: ToolContext) -> str:
        action = str(args.get("action", "")).strip().lower()
        subfolder = str(args.get("subfolder") or "").strip()
        filename = str(args.get("filename") or "").strip()
        content = args.get("content")
        query = str(args.get("query") or "").strip()

        if action not in ACTIONS:
            return tool_error(
                ErrorCode.INVALID_INPUT,
                "invalid_action",
                f"Unknown memory action '{action}'",
                suggestions=[f"Use one of: {', '.join(ACTIONS)}"],
                context={"action": action},
            )

        if action in ("read", "write", "append") and not filename:
            return tool_error(
                ErrorCode.MISSING_REQUIRED,
                "missing_parameter",
                f"'filename' is required for {action}",
                suggestions=["Call the memory tool with action 'list' to see available files"],
            )
        if action in ("write", "append") and not isinstance(content, str):
            return tool_error(
                ErrorCode.MISSING_REQUIRED,
                "missing_parameter",
                f"'content' (string) is required for {action}",
            )
        if action == "search" and not query:
            return tool_error(ErrorCode.MISSING_REQUIRED, "missing_parameter", "'query' is required for search")

        try:
            if action == "list":
                return await _list(context, subfolder)
            if action == "read":
                return await _read(context, subfolder, filename)
            if action in ("write", "append"):
                return await _write(context, subfolder, filename, content, append=action == "append")
            return await _search(context, query)

        except MemoryNotFoundError as e:
            return tool_error(
                ErrorCode.NOT_FOUND,
                "file_not_found",
                str(e),
                recoverable=True,
                suggestions=[
                    "Call the memory tool with action 'list' to see existing files",
                    "Use action 'write' to create the file",
                ],
                context={"filename": filename, "subfolder": subfolder or "/"},
            )
        except InvalidFilenameError as e:
            return tool_error(ErrorCode.INVALID_INPUT, "invalid_filename", str(e))
        except MemoryWriteError as e:
            return tool_error(
                ErrorCode.CONFLICT,
                "memory_write_unverified",
                str(e),
                suggestions=["Read the file back and retry the write"],
                context={"filename": filename},
            )
        except SQLAlchemyError as e:
            logger.error("Memory tool storage error", action=action, error=str(e))
            return tool_error(
                ErrorCode.SERVICE_UNAVAILABLE,
                "memory_operation_failed",
                "The memory storage is currently unavailable",
                retry_after=5,
                suggestions=["Retry the operation shortly"],
                context={"action": action},
            )

    return Tool(
        name="memory",
        description=(
            "Read and manage your persistent memory files. Actions: list (files and "
            "subfolders), read, write (create/replace), append (add a line), search "
            "(case-insensitive across all your files). Use 'subfolder' to work in a subdirectory."
        ),
        parameters=[
            ToolParameter(
                name="action",
                param_type="string",
                description="Operation to perform",
                enum=ACTIONS,
            ),
            ToolParameter(
                name="filename",
                param_type="string",
                description="File name, e.g. NOW.md (read/write/append)",
                required=False,
            ),
            ToolParameter(
                name="content",
                param_type="string",
                description="Text to write or append",
                required=False,
            ),
            ToolParameter(
                name="subfolder",
                param_type="string",
                description="Optional subfolder; omit for your root folder",
                required=False,
            ),
            ToolParameter(
                name="query",
                param_type="string",
                description="Search text (search)",
                required=False,
            ),
        ],
        handler=memory_handler,
    )
