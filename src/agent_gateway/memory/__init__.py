"""Persistent agent memory."""

from .store import (
    InvalidFilenameError,
    MemoryFile,
    MemoryNotFoundError,
    MemoryStore,
    MemoryStoreError,
    MemoryWriteError,
    SearchHit,
    normalize_filename,
    resolve_namespace,
    sanitize_name,
    snapshot_index_namespace,
    snapshot_namespace,
    subfolder_of,
)
from .templates import BOOTSTRAP_TEMPLATES

__all__ = [
    "BOOTSTRAP_TEMPLATES",
    "InvalidFilenameError",
    "MemoryFile",
    "MemoryNotFoundError",
    "MemoryStore",
    "MemoryStoreError",
    "MemoryWriteError",
    "SearchHit",
    "normalize_filename",
    "resolve_namespace",
    "sanitize_name",
    "snapshot_index_namespace",
    "snapshot_namespace",
    "subfolder_of",
]
