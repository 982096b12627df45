"""
Tests for the memory store.
"""

import pytest

from agent_gateway.memory import (
    BOOTSTRAP_TEMPLATES,
    InvalidFilenameError,
    MemoryNotFoundError,
    MemoryWriteError,
    resolve_namespace,
    sanitize_name,
    snapshot_namespace,
)
from agent_gateway.store import WriteAck


def test_sanitize_name():
    """Test agent names become lowercase identifiers."""
    assert sanitize_name("Test Bot") == "test_bot"
    assert sanitize_name("Ops-Agent.v2") == "ops_agent_v2"


def test_resolve_namespace():
    """Test subfolder joining rules."""
    assert resolve_namespace("bot") == "bot"
    assert resolve_namespace("bot", "") == "bot"
    assert resolve_namespace("bot", "notes") == "bot__notes"
    assert resolve_namespace("bot", "__notes") == "bot__notes"
    assert resolve_namespace("bot", "projects/alpha") == "bot__projects__alpha"


@pytest.mark.asyncio
async def test_write_then_read_round_trip(memory):
    """Test a written file reads back exactly."""
    await memory.write("bot", "X.md", "hello")
    assert await memory.read("bot", "X.md") == "hello"
    assert await memory.read("bot", "X") == "hello"


@pytest.mark.asyncio
async def test_read_missing_file_raises(memory):
    """Test reading an absent file."""
    with pytest.raises(MemoryNotFoundError):
        await memory.read("bot", "nope.md")


@pytest.mark.asyncio
async def test_empty_filename_rejected(memory):
    """Test blank filenames are refused."""
    with pytest.raises(InvalidFilenameError):
        await memory.write("bot", " .md ", "x")


@pytest.mark.asyncio
async def test_append_creates_then_extends(memory):
    """Test append joins with a newline."""
    await memory.append("bot", "log.md", "first")
    await memory.append("bot", "log.md", "second")
    assert await memory.read("bot", "log.md") == "first\nsecond"


@pytest.mark.asyncio
async def test_write_verifies_acknowledged_size(memory, monkeypatch):
    """Test a short acknowledgement fails the write."""

    async def short_ack(*args, **kwargs):
        return WriteAck(document_id="x", version=1, size=1)

    monkeypatch.setattr(memory.documents, "upsert_document", short_ack)
    with pytest.raises(MemoryWriteError):
        await memory.write("bot", "a.md", "hello")


@pytest.mark.asyncio
async def test_list_files_and_subfolders(memory):
    """Test listing root files and subfolders."""
    await memory.write("bot", "A.md", "a")
    await memory.write("bot__notes", "B.md", "b")
    await memory.write("bot__snapshots__chat1", "s.md", "s")

    files = await memory.list_files("bot")
    assert [f.filename for f in files] == ["A.md"]
    assert await memory.list_subfolders("bot") == ["notes", "snapshots__chat1"]


@pytest.mark.asyncio
async def test_search_stays_inside_prefix(memory):
    """Test search never leaks other agents' files."""
    await memory.write("bot", "A.md", "the foo project")
    await memory.write("bot__notes", "B.md", "more FOO here")
    await memory.write("bot2", "C.md", "foo as well")
    await memory.write("robot", "D.md", "foo again")

    hits = await memory.search("bot", "foo")
    assert sorted((h.subfolder, h.filename) for h in hits) == [("", "A.md"), ("notes", "B.md")]
    assert all(h.namespace == "bot" or h.namespace.startswith("bot__") for h in hits)
    assert "FOO" in hits[-1].snippet or "foo" in hits[-1].snippet


@pytest.mark.asyncio
async def test_search_respects_limit(memory):
    """Test the result cap."""
    for i in range(5):
        await memory.write("bot", f"f{i}.md", "match")
    assert len(await memory.search("bot", "match", limit=3)) == 3


@pytest.mark.asyncio
async def test_ensure_bootstrap_is_idempotent(memory):
    """Test templates are created once and never overwritten."""
    created = await memory.ensure_bootstrap("bot")
    assert sorted(created) == sorted(f"{name}.md" for name in BOOTSTRAP_TEMPLATES)

    await memory.write("bot", "USER.md", "custom")
    assert await memory.ensure_bootstrap("bot") == []
    assert await memory.read("bot", "USER.md") == "custom"


def test_snapshot_namespaces_are_per_chat():
    """Test chat ids that sanitize alike get their own snapshot folders."""
    assert snapshot_namespace("bot", "chat-1") == "bot__snapshots__chat_1"
    assert snapshot_namespace("bot", "a.b") != snapshot_namespace("bot", "a_b")
    assert snapshot_namespace("bot", "a.b").startswith("bot__snapshots__a_b_")
