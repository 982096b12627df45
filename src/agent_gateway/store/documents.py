"""
Document store backed by the SQLAlchemy async ORM.

Provides the addressed-document operations the memory system needs and the
generic discovery/query surface exposed to agents through the database tools.
"""

from dataclasses import dataclass
from typing import Any

import sqlalchemy
import structlog
from sqlalchemy import func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ..models import MODEL_REGISTRY, Base, Document, DocumentStatus, to_dict
from .filters import FilterError, match_filter, pushdown_clauses, run_pipeline

logger = structlog.get_logger()

ADMIN_COMMANDS = ("ping", "dbStats", "listCommands", "buildInfo")


class UnknownModelError(LookupError):
    """Raised when a model name is not registered."""


class UnknownCollectionError(LookupError):
    """Raised when a collection (table) does not exist."""


@dataclass(frozen=True)
class WriteAck:
    """Acknowledgement returned by a document write."""

    document_id: str
    version: int
    size: int
    created: bool = False


class DocumentStore:
    """Async document store over the ``documents`` table and friends."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    @property
    def engine(self) -> AsyncEngine:
        return self._session_maker.kw["bind"]

    # Addressed documents

    async def get_document(self, category: str, namespace: str, slug: str) -> Document | None:
        async with self._session_maker() as db:
            result = await db.execute(
                select(Document).where(
                    Document.category == category,
                    Document.namespace == namespace,
                    Document.slug == slug,
                )
            )
            return result.scalar_one_or_none()

    async def find_documents(
        self,
        category: str,
        *,
        namespace: str | None = None,
        namespace_prefix: str | None = None,
        slug: str | None = None,
        status: str | None = None,
        text_query: str | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Find documents in a category, oldest first.

        ``namespace_prefix`` matches the prefix itself and any
        ``<prefix>__<sub>`` namespace below it.
        """
        stmt = select(Document).where(Document.category == category)

        if namespace is not None:
            stmt = stmt.where(Document.namespace == namespace)
        if namespace_prefix is not None:
            stmt = stmt.where(
                or_(
                    Document.namespace == namespace_prefix,
                    Document.namespace.startswith(f"{namespace_prefix}__", autoescape=True),
                )
            )
        if slug is not None:
            stmt = stmt.where(Document.slug == slug)
        if status is not None:
            stmt = stmt.where(Document.status == status)
        if text_query:
            needle = text_query.lower()
            stmt = stmt.where(
                or_(
                    func.lower(Document.title).contains(needle, autoescape=True),
                    func.lower(Document.content).contains(needle, autoescape=True),
                )
            )

        stmt = stmt.order_by(Document.created_at, Document.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_maker() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def distinct_namespaces(self, category: str, namespace_prefix: str) -> list[str]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(Document.namespace)
                .where(
                    Document.category == category,
                    or_(
                        Document.namespace == namespace_prefix,
                        Document.namespace.startswith(f"{namespace_prefix}__", autoescape=True),
                    ),
                )
                .distinct()
                .order_by(Document.namespace)
            )
            return list(result.scalars().all())

    async def upsert_document(
        self,
        category: str,
        namespace: str,
        slug: str,
        content: str,
        *,
        title: str | None = None,
        status: str = DocumentStatus.PUBLISHED.value,
    ) -> WriteAck:
        """Insert or update a document and acknowledge the stored state."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(Document).where(
                    Document.category == category,
                    Document.namespace == namespace,
                    Document.slug == slug,
                )
            )
            document = result.scalar_one_or_none()
            created = document is None

            if document is None:
                document = Document(
                    category=category,
                    namespace=namespace,
                    slug=slug,
                    title=title or slug,
                    content=content,
                    status=status,
                    version=1,
                )
                db.add(document)
            else:
                document.content = content
                document.status = status
                document.version = (document.version or 0) + 1
                if title is not None:
                    document.title = title

            await db.commit()
            await db.refresh(document)

            return WriteAck(
                document_id=document.id,
                version=document.version,
                size=len(document.content.encode("utf-8")),
                created=created,
            )

    # Generic query surface

    def model_names(self) -> list[str]:
        return list(MODEL_REGISTRY)

    def _model(self, name: str) -> type[Base]:
        model = MODEL_REGISTRY.get(name)
        if model is None:
            raise UnknownModelError(name)
        return model

    def _collection(self, name: str) -> type[Base]:
        for model in MODEL_REGISTRY.values():
            if model.__tablename__ == name:
                return model
        raise UnknownCollectionError(name)

    async def _rows(self, model: type[Base], spec: dict[str, Any] | None) -> list[dict[str, Any]]:
        stmt = select(model)
        for clause in pushdown_clauses(model, spec):
            stmt = stmt.where(clause)
        async with self._session_maker() as db:
            result = await db.execute(stmt)
            rows = [to_dict(row) for row in result.scalars().all()]
        return [row for row in rows if match_filter(row, spec)]

    async def find(self, model_name: str, spec: dict[str, Any] | None = None, limit: int = 5) -> list[dict[str, Any]]:
        rows = await self._rows(self._model(model_name), spec)
        return rows[: max(limit, 0)]

    async def count(self, model_name: str, spec: dict[str, Any] | None = None) -> int:
        model = self._model(model_name)
        if not spec:
            async with self._session_maker() as db:
                result = await db.execute(select(func.count()).select_from(model))
                return int(result.scalar_one())
        return len(await self._rows(model, spec))

    async def list_collections(self) -> list[str]:
        def _names(sync_conn) -> list[str]:
            return sqlalchemy.inspect(sync_conn).get_table_names()

        async with self.engine.connect() as conn:
            return await conn.run_sync(_names)

    async def list_databases(self) -> list[dict[str, Any]]:
        if self.engine.dialect.name == "sqlite":
            async with self.engine.connect() as conn:
                result = await conn.execute(text("PRAGMA database_list"))
                return [{"name": row[1], "file": row[2] or None} for row in result]
        return [{"name": self.engine.url.database}]

    async def count_collection(self, collection: str, spec: dict[str, Any] | None = None) -> int:
        return len(await self._rows(self._collection(collection), spec))

    async def find_one_in_collection(self, collection: str, spec: dict[str, Any] | None = None) -> dict[str, Any] | None:
        rows = await self._rows(self._collection(collection), spec)
        return rows[0] if rows else None

    async def aggregate(self, collection: str, pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
        model = self._collection(collection)
        first_match: dict[str, Any] | None = None
        if pipeline and isinstance(pipeline[0], dict) and "$match" in pipeline[0]:
            first_match = pipeline[0]["$match"]
        rows = await self._rows(model, first_match)
        return run_pipeline(rows, pipeline[1:] if first_match is not None else pipeline)

    async def admin_command(self, command: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(command, dict) or not command:
            raise FilterError("Admin command must be a non-empty object")

        name = next(iter(command))
        if name == "ping":
            return {"ok": 1}
        if name == "listCommands":
            return {"ok": 1, "commands": list(ADMIN_COMMANDS)}
        if name == "buildInfo":
            return {
                "ok": 1,
                "dialect": self.engine.dialect.name,
                "driver": self.engine.dialect.driver,
                "sqlalchemy": sqlalchemy.__version__,
            }
        if name == "dbStats":
            counts = {}
            for model_name, model in MODEL_REGISTRY.items():
                counts[model.__tablename__] = await self.count(model_name)
            return {
                "ok": 1,
                "collections": len(counts),
                "objects": sum(counts.values()),
                "counts": counts,
            }
        raise FilterError(f"Unsupported admin command: {name}")
