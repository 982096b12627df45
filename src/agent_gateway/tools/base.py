"""
Base classes for tools.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal

from ..llm.base import ToolDefinition
from ..memory import sanitize_name
from ..models import Agent


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    param_type: str | list[str]  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


@dataclass
class ToolContext:
    """Who is calling a tool."""

    agent: Agent
    chat_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def agent_prefix(self) -> str:
        return sanitize_name(self.agent.name)


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]


@dataclass
class Tool:
    """A named, schema-described tool.

    The handler receives the parsed arguments and the calling context and
    returns text: a JSON payload on success or an error envelope on failure.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    handler: ToolHandler

    def get_parameters_schema(self) -> dict[str, Any]:
        """Convert parameters to JSON Schema format."""
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.param_type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop

            if param.required:
                required.append(param.name)

        return {
            "type": "object",
            "properties": properties,
            "required": required,
        }

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.get_parameters_schema(),
        )

    def missing_required(self, arguments: dict[str, Any]) -> list[str]:
        return [
            p.name for p in self.parameters
            if p.required and arguments.get(p.name) in (None, "")
        ]

    async def execute(self, arguments: dict[str, Any], context: ToolContext) -> str:
        """Execute the tool handler."""
        return await self.handler(arguments, context)


class JsonArgumentError(ValueError):
    """Raised when a JSON argument cannot be parsed."""


def _decode_extended(value: Any) -> Any:
    # {"$date": "..."} collapses to the ISO string stored in rows
    if isinstance(value, dict):
        if set(value) == {"$date"}:
            inner = value["$date"]
            return inner.get("$numberLong", inner) if isinstance(inner, dict) else inner
        return {k: _decode_extended(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode_extended(v) for v in value]
    return value


@dataclass(frozen=True)
class JsonArgument:
    """A tool argument that may arrive as a structure or as JSON text.

    Parsed once at the tool boundary; ``source`` records which form the
    model used and ``value`` always holds the parsed structure.
    """

    source: Literal["object", "string"]
    value: Any
    raw: str | None = None

    @classmethod
    def parse(cls, value: Any) -> "JsonArgument | None":
        if value is None:
            return None
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as e:
                raise JsonArgumentError(f"Invalid JSON: {e.msg} at position {e.pos}") from e
            return cls(source="string", value=_decode_extended(parsed), raw=value)
        if isinstance(value, (dict, list)):
            return cls(source="object", value=_decode_extended(value))
        raise JsonArgumentError(
            f"Expected an object or a JSON string, got {type(value).__name__}"
        )

    def as_object(self) -> dict[str, Any]:
        if not isinstance(self.value, dict):
            raise JsonArgumentError("Expected a JSON object")
        return self.value

    def as_pipeline(self) -> list[dict[str, Any]]:
        if isinstance(self.value, dict):
            return [self.value]
        if not isinstance(self.value, list):
            raise JsonArgumentError("Expected a JSON array of pipeline stages")
        return self.value
