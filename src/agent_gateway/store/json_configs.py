"""
JSON config store - slug-addressed JSON records.

Sessions and conversation histories are persisted here. Keys are
normalized into slugs so any chat id can be used safely.
"""

import hashlib
import json
import re
import unicodedata
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..models import JsonConfig

logger = structlog.get_logger()


def normalize_slug(key: str) -> str:
    """Normalize a key: lowercase, ASCII, runs of other characters collapsed to '-'."""
    value = unicodedata.normalize("NFKD", str(key or "").strip().lower())
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value)
    return value.strip("-")


def stable_slug(value: str) -> str:
    """``value`` as a slug that stays distinct from other raw values.

    Values that are already slugs pass through unchanged. Anything the
    normalization would alter gets a short hash of the raw value appended,
    so "Chat 1" and "chat-1" do not share a record.
    """
    value = str(value)
    slug = normalize_slug(value)
    if slug == value:
        return slug
    digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}" if slug else digest


class JsonConfigStore:
    """Reads and writes JSON payloads keyed by normalized slug."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def get(self, key: str) -> dict[str, Any] | None:
        """Load a record's payload, or None if absent or unreadable."""
        slug = normalize_slug(key)
        async with self._session_maker() as db:
            result = await db.execute(select(JsonConfig).where(JsonConfig.slug == slug))
            record = result.scalar_one_or_none()

        if record is None:
            return None

        try:
            payload = json.loads(record.json_raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON config ignored", slug=slug)
            return None

        return payload if isinstance(payload, dict) else None

    async def put(self, key: str, payload: dict[str, Any], title: str | None = None) -> int:
        """Create or replace a record. Returns the new version."""
        slug = normalize_slug(key)
        raw = json.dumps(payload, default=str)

        async with self._session_maker() as db:
            result = await db.execute(select(JsonConfig).where(JsonConfig.slug == slug))
            record = result.scalar_one_or_none()

            if record is None:
                record = JsonConfig(
                    slug=slug,
                    alias=key,
                    title=title or key,
                    json_raw=raw,
                    version=1,
                )
                db.add(record)
            else:
                record.json_raw = raw
                record.version = (record.version or 0) + 1
                if title is not None:
                    record.title = title

            await db.commit()
            return record.version

    async def list_by_prefix(self, prefix: str, limit: int = 20) -> list[dict[str, Any]]:
        """List payloads whose slug starts with a normalized prefix, newest first."""
        slug_prefix = normalize_slug(prefix)
        async with self._session_maker() as db:
            result = await db.execute(
                select(JsonConfig)
                .where(JsonConfig.slug.startswith(slug_prefix, autoescape=True))
                .order_by(JsonConfig.updated_at.desc())
                .limit(limit)
            )
            records = result.scalars().all()

        payloads = []
        for record in records:
            try:
                payload = json.loads(record.json_raw)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                payloads.append(payload)
        return payloads
