"""
Tests for system prompt assembly.
"""

import pytest

from agent_gateway.agent import PromptAssembler
from agent_gateway.agent.prompt import DEFAULT_PERSONA


@pytest.mark.asyncio
async def test_prompt_order_rules_memory_persona(documents, memory, agent):
    """Test rules come first, then memory, then persona."""
    await documents.upsert_document("rules", "", "tone", "---\ntrigger: always_on\n---\nBe brief.")
    await documents.upsert_document("rules", "", "other", "trigger: manual\nIgnore me.")
    await documents.upsert_document("rules", "", "drafted", "trigger: always_on\nDraft.", status="draft")
    await memory.write("test_bot", "USER.md", "about the user")

    prompt = await PromptAssembler(documents, memory).build_system_prompt(agent, "chat-1")

    rules_at = prompt.index("Be brief.")
    memory_at = prompt.index("VIRTUAL COGNITIVE SPACE")
    persona_at = prompt.index("You are a test assistant.")
    assert rules_at < memory_at < persona_at
    assert "Ignore me." not in prompt
    assert "Draft." not in prompt
    assert "- USER.md" in prompt
    assert prompt.endswith("You are a test assistant.\n\n")


@pytest.mark.asyncio
async def test_rules_joined_with_separator(documents, memory, agent):
    """Test multiple rules are separated by a horizontal rule."""
    await documents.upsert_document("rules", "", "a", "TRIGGER: Always_On\nRule A")
    await documents.upsert_document("rules", "", "b", "trigger:always_on\nRule B")

    rules = await PromptAssembler(documents, memory).global_rules()
    assert rules == "TRIGGER: Always_On\nRule A\n\n---\n\ntrigger:always_on\nRule B"


@pytest.mark.asyncio
async def test_persona_reference_resolves_document(documents, memory, agent):
    """Test markdown:<category>/<slug> personas."""
    await documents.upsert_document("personas", "", "pirate", "Talk like a pirate.")
    assembler = PromptAssembler(documents, memory)

    agent.system_prompt = "markdown:personas/pirate"
    assert await assembler.persona(agent) == "Talk like a pirate."

    agent.system_prompt = "markdown:personas/missing"
    assert await assembler.persona(agent) == DEFAULT_PERSONA

    agent.system_prompt = None
    assert await assembler.persona(agent) == DEFAULT_PERSONA


@pytest.mark.asyncio
async def test_memory_context_placeholders(documents, memory, agent):
    """Test empty workspaces are described."""
    context = await PromptAssembler(documents, memory).memory_context(agent)
    assert "(No files yet)" in context
    assert "(No subdirectories yet)" in context
    assert "Current Session Snapshot" not in context


@pytest.mark.asyncio
async def test_memory_context_embeds_chat_snapshot(documents, memory, agent):
    """Test only the current chat's latest snapshot is embedded."""
    await memory.write("test_bot__snapshots__chat_1", "snapshot-1", "old summary")
    await memory.write("test_bot__snapshots__chat_1", "snapshot-2", "new summary")
    await memory.write("test_bot__snapshots__chat_2", "snapshot-1", "someone else")

    context = await PromptAssembler(documents, memory).memory_context(agent, "chat-1")
    assert "new summary" in context
    assert "old summary" not in context
    assert "someone else" not in context
    assert "- snapshots__chat_1/" in context
