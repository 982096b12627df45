"""
System prompt assembly.

The final prompt is global rules, then the memory context, then the
agent's persona, each followed by a blank line.
"""

import re

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..memory import MemoryStore, sanitize_name, snapshot_namespace
from ..models import Agent, DocumentStatus
from ..store import DocumentStore

logger = structlog.get_logger()

DEFAULT_PERSONA = "You are a helpful assistant."
PERSONA_REF_PREFIX = "markdown:"
RULES_CATEGORY = "rules"
RULE_SEPARATOR = "\n\n---\n\n"
ALWAYS_ON = re.compile(r"trigger:\s*always_on", re.IGNORECASE)

MEMORY_INSTRUCTIONS = """## Instructions
1. **Always read USER.md** at the start of a conversation to understand your human.
2. **Keep NOW.md updated** with active goals and recent context.
3. **Record significant decisions** in DECISIONS.md.
4. **Promote stable knowledge** from short-term context to long-term memory files.
5. Use the `memory` tool with action `search` before asking the user something you may already know.
6. Treat this space as your brain, execution layer, and identity anchor."""


class PromptAssembler:
    """Builds an agent's system prompt from documents and memory."""

    def __init__(self, documents: DocumentStore, memory: MemoryStore):
        self.documents = documents
        self.memory = memory

    async def build_system_prompt(self, agent: Agent, chat_id: str | None = None) -> str:
        rules = await self.global_rules()
        memory_context = await self.memory_context(agent, chat_id)
        persona = await self.persona(agent)

        prompt = ""
        if rules:
            prompt += f"{rules}\n\n"
        if memory_context:
            prompt += f"{memory_context}\n\n"
        prompt += f"{persona}\n\n"
        return prompt

    async def persona(self, agent: Agent) -> str:
        """The agent's literal prompt, or the document it references."""
        ref = (agent.system_prompt or "").strip()
        if not ref:
            return DEFAULT_PERSONA
        if not ref.startswith(PERSONA_REF_PREFIX):
            return agent.system_prompt

        path = ref[len(PERSONA_REF_PREFIX):].strip()
        category, _, slug = path.partition("/")
        if not category or not slug:
            logger.warning("Malformed persona reference", agent=agent.name, ref=ref)
            return DEFAULT_PERSONA

        try:
            docs = await self.documents.find_documents(category, slug=slug, limit=1)
        except SQLAlchemyError as e:
            logger.error("Failed to load persona document", agent=agent.name, ref=ref, error=str(e))
            return DEFAULT_PERSONA

        if not docs or not docs[0].content.strip():
            logger.warning("Persona document not found", agent=agent.name, ref=ref)
            return DEFAULT_PERSONA
        return docs[0].content

    async def global_rules(self) -> str:
        """Published rules marked ``trigger: always_on``, in document order."""
        try:
            docs = await self.documents.find_documents(
                RULES_CATEGORY,
                status=DocumentStatus.PUBLISHED.value,
            )
        except SQLAlchemyError as e:
            logger.error("Failed to load global rules", error=str(e))
            return ""
        return RULE_SEPARATOR.join(doc.content for doc in docs if ALWAYS_ON.search(doc.content))

    async def memory_context(self, agent: Agent, chat_id: str | None = None) -> str:
        prefix = sanitize_name(agent.name)
        try:
            files = await self.memory.list_files(prefix)
            subfolders = await self.memory.list_subfolders(prefix)
            snapshot = None
            if chat_id:
                snapshots = await self.memory.list_files(snapshot_namespace(prefix, chat_id))
                snapshot = snapshots[-1] if snapshots else None
        except SQLAlchemyError as e:
            logger.error("Error building memory context", agent=agent.name, error=str(e))
            return ""

        file_list = "\n".join(f"- {f.filename}" for f in files) or "- (No files yet)"
        folder_list = "\n".join(f"- {name}/" for name in subfolders) or "- (No subdirectories yet)"

        sections = [
            "# VIRTUAL COGNITIVE SPACE (memory)",
            "You have a persistent virtual workspace. Use the `memory` tool to read, "
            "write, and manage your long-term memory and identity.",
            f"## Workspace Structure\n- **Root Files**:\n{file_list}\n\n- **Subdirectories**:\n{folder_list}",
        ]
        if snapshot is not None:
            sections.append(
                f"## Current Session Snapshot ({snapshot.filename})\n"
                "Earlier messages of this conversation were compacted into this summary:\n\n"
                f"{snapshot.content}"
            )
        sections.append(MEMORY_INSTRUCTIONS)
        return "\n\n".join(sections)
