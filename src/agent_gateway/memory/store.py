"""
Memory Store - the agent's persistent virtual filesystem.

Memory files are documents in a fixed category, grouped into namespaces.
An agent's root namespace is its sanitized name; subfolders hang off it
as ``<agent>__<subfolder>``. Files are addressed by name with or without
the ``.md`` suffix.
"""

import re
from dataclasses import dataclass

import structlog

from ..config import Settings, get_settings
from ..models import DocumentStatus
from ..store import DocumentStore, WriteAck, stable_slug
from .templates import BOOTSTRAP_TEMPLATES

logger = structlog.get_logger()

SNIPPET_RADIUS = 80


class MemoryStoreError(Exception):
    """Base error for memory operations."""


class MemoryNotFoundError(MemoryStoreError):
    """Raised when a memory file does not exist."""

    def __init__(self, namespace: str, filename: str):
        super().__init__(f"File '{filename}' not found in '{namespace}'")
        self.namespace = namespace
        self.filename = filename


class MemoryWriteError(MemoryStoreError):
    """Raised when a write is not acknowledged with the expected size."""


class InvalidFilenameError(MemoryStoreError, ValueError):
    """Raised for empty or unusable filenames."""


def sanitize_name(name: str) -> str:
    """Turn an agent name into its root namespace."""
    return re.sub(r"[^a-z0-9]", "_", (name or "").lower())


def resolve_namespace(agent_prefix: str, subfolder: str | None = None) -> str:
    """Join an optional subfolder onto an agent prefix.

    Leading underscores are stripped from the subfolder and ``/`` separators
    become ``__``; an empty subfolder means the root namespace.
    """
    if not subfolder:
        return agent_prefix
    cleaned = subfolder.strip().strip("/").replace("/", "__").lstrip("_")
    if not cleaned:
        return agent_prefix
    return f"{agent_prefix}__{cleaned}"


def subfolder_of(namespace: str, agent_prefix: str) -> str:
    """The subfolder part of a namespace relative to an agent prefix."""
    if not namespace.startswith(agent_prefix):
        return ""
    return namespace[len(agent_prefix):].removeprefix("__")


def normalize_filename(filename: str) -> str:
    """Filename to slug: trimmed, without a trailing ``.md``."""
    slug = (filename or "").strip().strip("/")
    if slug.lower().endswith(".md"):
        slug = slug[:-3]
    if not slug:
        raise InvalidFilenameError("Filename must not be empty")
    return slug


def display_filename(slug: str) -> str:
    return f"{slug}.md"


def snapshot_namespace(agent_prefix: str, chat_id: str) -> str:
    """Where snapshots for one chat are kept."""
    return f"{agent_prefix}__snapshots__{stable_slug(chat_id).replace('-', '_')}"


def snapshot_index_namespace(agent_prefix: str) -> str:
    return f"{agent_prefix}__snapshots"


@dataclass
class MemoryFile:
    """A memory file's metadata and content."""

    namespace: str
    filename: str
    title: str
    content: str
    status: str = DocumentStatus.PUBLISHED.value


@dataclass
class SearchHit:
    """A search result annotated with its subfolder."""

    namespace: str
    subfolder: str
    filename: str
    title: str
    snippet: str


def _snippet(content: str, query: str) -> str:
    index = content.lower().find(query.lower())
    if index < 0:
        return content[: SNIPPET_RADIUS * 2]
    start = max(0, index - SNIPPET_RADIUS)
    end = min(len(content), index + len(query) + SNIPPET_RADIUS)
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(content) else ""
    return f"{prefix}{content[start:end]}{suffix}"


class MemoryStore:
    """Namespaced text files on top of the document store."""

    def __init__(self, documents: DocumentStore, settings: Settings | None = None):
        self.documents = documents
        self.settings = settings or get_settings()
        self.category = self.settings.memory_category

    async def list_files(self, namespace: str) -> list[MemoryFile]:
        """List files in a namespace (content included)."""
        docs = await self.documents.find_documents(self.category, namespace=namespace)
        return [
            MemoryFile(
                namespace=doc.namespace,
                filename=display_filename(doc.slug),
                title=doc.title,
                content=doc.content,
                status=doc.status,
            )
            for doc in docs
        ]

    async def list_subfolders(self, agent_prefix: str) -> list[str]:
        """Subfolder names that hold at least one file under an agent prefix."""
        namespaces = await self.documents.distinct_namespaces(self.category, agent_prefix)
        pattern = re.compile(rf"^{re.escape(agent_prefix)}__")
        return [subfolder_of(ns, agent_prefix) for ns in namespaces if pattern.match(ns)]

    async def get(self, namespace: str, filename: str) -> MemoryFile | None:
        slug = normalize_filename(filename)
        doc = await self.documents.get_document(self.category, namespace, slug)
        if doc is None:
            return None
        return MemoryFile(
            namespace=doc.namespace,
            filename=display_filename(doc.slug),
            title=doc.title,
            content=doc.content,
            status=doc.status,
        )

    async def read(self, namespace: str, filename: str) -> str:
        memory_file = await self.get(namespace, filename)
        if memory_file is None:
            raise MemoryNotFoundError(namespace, filename)
        return memory_file.content

    async def write(self, namespace: str, filename: str, content: str) -> WriteAck:
        """Upsert a file and verify the acknowledged size."""
        slug = normalize_filename(filename)
        expected = len(content.encode("utf-8"))

        ack = await self.documents.upsert_document(
            self.category,
            namespace,
            slug,
            content,
            title=display_filename(slug),
        )

        if ack.size != expected:
            raise MemoryWriteError(
                f"Write to {namespace}/{display_filename(slug)} acknowledged "
                f"{ack.size} bytes, expected {expected}"
            )

        logger.info(
            "Memory file written",
            namespace=namespace,
            filename=display_filename(slug),
            size=ack.size,
            version=ack.version,
        )
        return ack

    async def append(self, namespace: str, filename: str, content: str) -> WriteAck:
        """Append a line to a file, creating it if absent."""
        existing = await self.get(namespace, filename)
        previous = existing.content if existing else ""
        previous_size = len(previous.encode("utf-8"))

        combined = f"{previous}\n{content}" if previous else content
        ack = await self.write(namespace, filename, combined)

        if ack.size <= previous_size:
            logger.warning(
                "Append did not grow file",
                namespace=namespace,
                filename=filename,
                previous_size=previous_size,
                new_size=ack.size,
            )
        return ack

    async def search(self, agent_prefix: str, query: str, limit: int | None = None) -> list[SearchHit]:
        """Case-insensitive substring search over titles and contents below a prefix."""
        limit = limit or self.settings.search_limit
        docs = await self.documents.find_documents(
            self.category,
            namespace_prefix=agent_prefix,
            text_query=query,
            limit=limit,
        )

        pattern = re.compile(rf"^{re.escape(agent_prefix)}(?:$|__)")
        hits = []
        for doc in docs:
            if not pattern.match(doc.namespace):
                continue
            hits.append(SearchHit(
                namespace=doc.namespace,
                subfolder=subfolder_of(doc.namespace, agent_prefix),
                filename=display_filename(doc.slug),
                title=doc.title,
                snippet=_snippet(doc.content, query),
            ))
        return hits[:limit]

    async def ensure_bootstrap(self, agent_prefix: str) -> list[str]:
        """Create any missing template files in an agent's root namespace."""
        created = []
        for name, template in BOOTSTRAP_TEMPLATES.items():
            if await self.documents.get_document(self.category, agent_prefix, name) is not None:
                continue
            await self.write(agent_prefix, name, template)
            created.append(display_filename(name))
            logger.info("Initialized memory file", filename=display_filename(name), namespace=agent_prefix)
        return created
