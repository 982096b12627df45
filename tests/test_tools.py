"""
Tests for tools module.
"""

import json

import pytest

from agent_gateway.tools import (
    ErrorCode,
    JsonArgument,
    JsonArgumentError,
    Tool,
    ToolContext,
    ToolExecutor,
    ToolParameter,
    create_database_tools,
    create_default_tools,
    create_memory_tool,
    parse_error_envelope,
    tool_error,
    tool_success,
)


async def echo_handler(args, context):
    return tool_success({"echo": args.get("text"), "agent": context.agent_prefix})


def echo_tool() -> Tool:
    return Tool(
        name="echo",
        description="Echo text back",
        parameters=[ToolParameter(name="text", param_type="string", description="Text to echo")],
        handler=echo_handler,
    )


def test_tool_error_envelope_shape():
    """Test the envelope carries every field."""
    envelope = json.loads(tool_error(ErrorCode.NOT_FOUND, "file_not_found", "missing"))
    assert set(envelope["error"]) == {
        "code", "type", "message", "recoverable", "retry_after", "suggestions", "context",
    }
    assert envelope["error"]["code"] == "NOT_FOUND"
    assert envelope["error"]["recoverable"] is False
    assert envelope["error"]["suggestions"] == []


def test_tool_error_recoverable_defaults():
    """Test recoverability follows the code unless overridden."""
    assert parse_error_envelope(tool_error(ErrorCode.INVALID_INPUT, "t", "m"))["recoverable"] is True
    assert parse_error_envelope(tool_error(ErrorCode.BUG, "t", "m"))["recoverable"] is False
    assert parse_error_envelope(tool_error(ErrorCode.BUG, "t", "m", recoverable=True))["recoverable"] is True


def test_parse_error_envelope_ignores_other_payloads():
    """Test success payloads and plain text are not errors."""
    assert parse_error_envelope(tool_success({"ok": True})) is None
    assert parse_error_envelope('{"error": "just a string"}') is None
    assert parse_error_envelope("plain text") is None
    assert parse_error_envelope("[1, 2]") is None


def test_json_argument_accepts_object_or_string():
    """Test both argument forms parse to the same value."""
    from_object = JsonArgument.parse({"status": "published"})
    from_string = JsonArgument.parse('{"status": "published"}')

    assert from_object.source == "object"
    assert from_string.source == "string"
    assert from_string.raw == '{"status": "published"}'
    assert from_object.as_object() == from_string.as_object() == {"status": "published"}


def test_json_argument_empty_and_invalid():
    """Test empty input and malformed JSON."""
    assert JsonArgument.parse(None) is None
    assert JsonArgument.parse("   ") is None
    with pytest.raises(JsonArgumentError):
        JsonArgument.parse("{not json")
    with pytest.raises(JsonArgumentError):
        JsonArgument.parse(42)
    with pytest.raises(JsonArgumentError):
        JsonArgument.parse("[1]").as_object()


def test_json_argument_collapses_extended_dates():
    """Test {"$date": ...} values become plain strings."""
    arg = JsonArgument.parse({"created_at": {"$gte": {"$date": "2024-01-01T00:00:00"}}})
    assert arg.as_object() == {"created_at": {"$gte": "2024-01-01T00:00:00"}}


def test_json_argument_pipeline():
    """Test a single stage is wrapped into a pipeline."""
    assert JsonArgument.parse({"$count": "n"}).as_pipeline() == [{"$count": "n"}]
    assert JsonArgument.parse('[{"$limit": 1}]').as_pipeline() == [{"$limit": 1}]


def test_tool_parameters_schema():
    """Test conversion to JSON Schema."""
    schema = echo_tool().get_parameters_schema()
    assert schema["type"] == "object"
    assert "text" in schema["properties"]
    assert schema["required"] == ["text"]


@pytest.mark.asyncio
async def test_executor_unknown_tool(agent):
    """Test unknown tools produce a non-recoverable envelope."""
    executor = ToolExecutor([echo_tool()])
    error = parse_error_envelope(await executor.execute_tool("nope", {}, ToolContext(agent=agent)))
    assert error["code"] == "NOT_FOUND"
    assert error["type"] == "tool_not_found"
    assert error["recoverable"] is False


@pytest.mark.asyncio
async def test_executor_missing_required(agent):
    """Test required parameters are validated before dispatch."""
    executor = ToolExecutor([echo_tool()])
    error = parse_error_envelope(await executor.execute_tool("echo", {}, ToolContext(agent=agent)))
    assert error["code"] == "MISSING_REQUIRED"
    assert error["context"]["missing"] == ["text"]


@pytest.mark.asyncio
async def test_executor_runs_tool(agent):
    """Test a registered tool runs with the caller's context."""
    executor = ToolExecutor([echo_tool()])
    result = json.loads(await executor.execute_tool("echo", {"text": "hi"}, ToolContext(agent=agent)))
    assert result == {"echo": "hi", "agent": "test_bot"}


@pytest.mark.asyncio
async def test_executor_converts_tool_exceptions(agent):
    """Test an exception escaping a tool becomes a BUG envelope."""

    async def broken(args, context):
        raise TypeError("'int' object is not iterable")

    executor = ToolExecutor([Tool(name="broken", description="Always fails", parameters=[], handler=broken)])
    error = parse_error_envelope(await executor.execute_tool("broken", {}, ToolContext(agent=agent)))
    assert error["code"] == "BUG"
    assert error["type"] == "tool_execution_failed"
    assert error["recoverable"] is False
    assert "not iterable" in error["message"]


def test_default_tools_registered(memory, documents, settings):
    """Test the built-in tool set."""
    executor = create_default_tools(memory, documents, settings)
    assert sorted(executor.list_tools()) == [
        "exec", "get_system_stats", "memory", "query_database", "raw_db_query",
    ]
    assert all(d.parameters["type"] == "object" for d in executor.get_definitions())


# Memory tool

@pytest.mark.asyncio
async def test_memory_tool_write_read_list(memory, agent):
    """Test the memory tool is scoped to the calling agent."""
    tool = create_memory_tool(memory)
    context = ToolContext(agent=agent)

    written = json.loads(await tool.execute(
        {"action": "write", "filename": "NOW.md", "content": "ship it", "subfolder": "work"}, context,
    ))
    assert written["success"] is True
    assert written["size"] == 7

    assert await memory.read("test_bot__work", "NOW.md") == "ship it"

    read = json.loads(await tool.execute({"action": "read", "filename": "NOW", "subfolder": "work"}, context))
    assert read["content"] == "ship it"

    listing = json.loads(await tool.execute({"action": "list"}, context))
    assert listing["subfolders"] == ["work"]


@pytest.mark.asyncio
async def test_memory_tool_errors(memory, agent):
    """Test failures come back as envelopes."""
    tool = create_memory_tool(memory)
    context = ToolContext(agent=agent)

    missing = parse_error_envelope(await tool.execute({"action": "read", "filename": "ghost.md"}, context))
    assert missing["code"] == "NOT_FOUND"
    assert missing["type"] == "file_not_found"
    assert missing["recoverable"] is True

    bad_action = parse_error_envelope(await tool.execute({"action": "delete"}, context))
    assert bad_action["code"] == "INVALID_INPUT"

    no_content = parse_error_envelope(await tool.execute({"action": "write", "filename": "a.md"}, context))
    assert no_content["code"] == "MISSING_REQUIRED"


@pytest.mark.asyncio
async def test_memory_tool_search(memory, agent):
    """Test search results carry subfolder names."""
    await memory.write("test_bot", "A.md", "remember the milk")
    await memory.write("test_bot__shopping", "B.md", "MILK and eggs")
    await memory.write("other_bot", "C.md", "milk")

    tool = create_memory_tool(memory)
    result = json.loads(await tool.execute({"action": "search", "query": "milk"}, ToolContext(agent=agent)))
    assert result["count"] == 2
    assert sorted(r["subfolder"] for r in result["results"]) == ["/", "shopping"]


# Database tools

def _db_tools(documents) -> dict[str, Tool]:
    return {tool.name: tool for tool in create_database_tools(documents)}


@pytest.mark.asyncio
async def test_query_database(documents, agent):
    """Test generic lookups by model name."""
    tools = _db_tools(documents)
    context = ToolContext(agent=agent)

    result = json.loads(await tools["query_database"].execute(
        {"modelName": "Agent", "query": '{"name": "Test Bot"}'}, context,
    ))
    assert result["count"] == 1
    assert result["results"][0]["model"] == "openai/gpt-4o-mini"

    error = parse_error_envelope(await tools["query_database"].execute({"modelName": "Invoice"}, context))
    assert error["code"] == "NOT_FOUND"
    assert any("listCollections" in s for s in error["suggestions"])


@pytest.mark.asyncio
async def test_get_system_stats(documents, agent):
    """Test counts for every model."""
    await documents.upsert_document("mem", "bot", "a", "x")
    tools = _db_tools(documents)
    result = json.loads(await tools["get_system_stats"].execute({}, ToolContext(agent=agent)))
    assert result["counts"] == {"Agent": 1, "Document": 1, "JsonConfig": 0}


@pytest.mark.asyncio
async def test_raw_db_query_variants(documents, agent):
    """Test each query type through the tool boundary."""
    await documents.upsert_document("mem", "bot", "a", "x")
    await documents.upsert_document("mem", "bot", "b", "y")
    tool = _db_tools(documents)["raw_db_query"]
    context = ToolContext(agent=agent)

    collections = json.loads(await tool.execute({"queryType": "listCollections"}, context))
    assert "documents" in collections["collections"]

    count = json.loads(await tool.execute(
        {"queryType": "countDocuments", "collection": "documents", "filter": {"category": "mem"}}, context,
    ))
    assert count["count"] == 2

    found = json.loads(await tool.execute(
        {"queryType": "findOne", "collection": "documents", "filter": '{"slug": "b"}'}, context,
    ))
    assert found["document"]["content"] == "y"

    aggregated = json.loads(await tool.execute(
        {"queryType": "aggregate", "collection": "documents", "filter": [{"$count": "n"}]}, context,
    ))
    assert aggregated["results"] == [{"n": 2}]

    ping = json.loads(await tool.execute({"queryType": "adminCommand", "adminCommand": '{"ping": 1}'}, context))
    assert ping["ok"] == 1


@pytest.mark.asyncio
async def test_raw_db_query_bad_json_is_recoverable(documents, agent):
    """Test malformed JSON arguments become a recoverable error."""
    tool = _db_tools(documents)["raw_db_query"]
    error = parse_error_envelope(await tool.execute(
        {"queryType": "countDocuments", "collection": "documents", "filter": "{oops"},
        ToolContext(agent=agent),
    ))
    assert error["type"] == "query_execution_failed"
    assert error["recoverable"] is True


@pytest.mark.asyncio
async def test_raw_db_query_unknown_collection(documents, agent):
    """Test missing collections map to NOT_FOUND."""
    tool = _db_tools(documents)["raw_db_query"]
    error = parse_error_envelope(await tool.execute(
        {"queryType": "findOne", "collection": "invoices"}, ToolContext(agent=agent),
    ))
    assert error["code"] == "NOT_FOUND"
