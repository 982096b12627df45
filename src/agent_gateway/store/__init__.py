"""Persistence layer: documents and JSON configs."""

from .documents import (
    DocumentStore,
    UnknownCollectionError,
    UnknownModelError,
    WriteAck,
)
from .filters import FilterError, match_filter, run_pipeline
from .json_configs import JsonConfigStore, normalize_slug, stable_slug

__all__ = [
    "DocumentStore",
    "FilterError",
    "JsonConfigStore",
    "UnknownCollectionError",
    "UnknownModelError",
    "WriteAck",
    "match_filter",
    "normalize_slug",
    "run_pipeline",
    "stable_slug",
]
