"""
Mongo-style filter and pipeline evaluation.

The database tools accept the query language agents already know
(``{"status": "published", "version": {"$gte": 2}}``). Simple equality
terms are pushed down into SQL; the full filter is then evaluated on the
materialized rows so every operator behaves the same on any backend.
"""

import re
from typing import Any, Iterable

from sqlalchemy import ColumnElement

from ..models import Base

_MISSING = object()


class FilterError(ValueError):
    """Raised for filters or pipelines that cannot be evaluated."""


def _resolve(doc: dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _compare(value: Any, other: Any, op: str) -> bool:
    if value is _MISSING or value is None or other is None:
        return False
    try:
        if op == "$gt":
            return value > other
        if op == "$gte":
            return value >= other
        if op == "$lt":
            return value < other
        return value <= other
    except TypeError:
        return False


def _regex(pattern: Any, options: Any = "") -> re.Pattern[str]:
    if not isinstance(options, str):
        raise FilterError("$options must be a string")
    flags = 0
    for flag in options:
        if flag == "i":
            flags |= re.IGNORECASE
        elif flag == "m":
            flags |= re.MULTILINE
        elif flag == "s":
            flags |= re.DOTALL
        else:
            raise FilterError(f"Unsupported regex option: {flag}")
    try:
        return re.compile(str(pattern), flags)
    except re.error as e:
        raise FilterError(f"Invalid regex {pattern!r}: {e}") from e


def _match_operators(value: Any, ops: dict[str, Any]) -> bool:
    for op, operand in ops.items():
        if op == "$eq":
            if value is _MISSING or value != operand:
                return False
        elif op == "$ne":
            if value is not _MISSING and value == operand:
                return False
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            if not _compare(value, operand, op):
                return False
        elif op == "$in":
            if not isinstance(operand, list):
                raise FilterError("$in expects a list")
            if value is _MISSING or value not in operand:
                return False
        elif op == "$nin":
            if not isinstance(operand, list):
                raise FilterError("$nin expects a list")
            if value is not _MISSING and value in operand:
                return False
        elif op == "$exists":
            if bool(operand) != (value is not _MISSING):
                return False
        elif op == "$regex":
            if value is _MISSING or not isinstance(value, str):
                return False
            if not _regex(operand, ops.get("$options", "")).search(value):
                return False
        elif op == "$options":
            continue
        else:
            raise FilterError(f"Unsupported operator: {op}")
    return True


def match_filter(doc: dict[str, Any], spec: dict[str, Any] | None) -> bool:
    """Evaluate a Mongo-style filter against a plain dict."""
    if not spec:
        return True
    if not isinstance(spec, dict):
        raise FilterError("Filter must be an object")

    for key, condition in spec.items():
        if key in ("$and", "$or") and not isinstance(condition, list):
            raise FilterError(f"{key} expects a list of filters")
        if key == "$and":
            if not all(match_filter(doc, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(match_filter(doc, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise FilterError(f"Unsupported top-level operator: {key}")
        elif isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            if not _match_operators(_resolve(doc, key), condition):
                return False
        else:
            value = _resolve(doc, key)
            if value is _MISSING or value != condition:
                return False
    return True


def pushdown_clauses(model: type[Base], spec: dict[str, Any] | None) -> list[ColumnElement[bool]]:
    """SQL clauses for the plain equality terms of a filter."""
    if not spec:
        return []
    columns = model.__table__.columns
    clauses: list[ColumnElement[bool]] = []
    for key, condition in spec.items():
        if key.startswith("$") or key not in columns:
            continue
        if isinstance(condition, (dict, list)):
            continue
        clauses.append(columns[key] == condition)
    return clauses


# Aggregation

def _field_ref(expr: Any, doc: dict[str, Any]) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        value = _resolve(doc, expr[1:])
        return None if value is _MISSING else value
    return expr


def _group(rows: list[dict[str, Any]], spec: dict[str, Any]) -> list[dict[str, Any]]:
    if not isinstance(spec, dict) or "_id" not in spec:
        raise FilterError("$group expects an object with an _id")

    buckets: dict[Any, list[dict[str, Any]]] = {}
    keys: dict[Any, Any] = {}
    for row in rows:
        key = _field_ref(spec["_id"], row)
        hashable = repr(key)
        buckets.setdefault(hashable, []).append(row)
        keys[hashable] = key

    output = []
    for hashable, members in buckets.items():
        result: dict[str, Any] = {"_id": keys[hashable]}
        for name, accumulator in spec.items():
            if name == "_id":
                continue
            if not isinstance(accumulator, dict) or len(accumulator) != 1:
                raise FilterError(f"Invalid accumulator for {name}")
            op, expr = next(iter(accumulator.items()))
            values = [_field_ref(expr, m) for m in members]
            numbers = [v for v in values if isinstance(v, (int, float))]
            if op == "$sum":
                result[name] = sum(numbers)
            elif op == "$avg":
                result[name] = sum(numbers) / len(numbers) if numbers else None
            elif op == "$min":
                result[name] = min(numbers) if numbers else None
            elif op == "$max":
                result[name] = max(numbers) if numbers else None
            elif op == "$first":
                result[name] = values[0] if values else None
            else:
                raise FilterError(f"Unsupported accumulator: {op}")
        output.append(result)
    return output


def _sort(rows: list[dict[str, Any]], spec: dict[str, int]) -> list[dict[str, Any]]:
    if not isinstance(spec, dict):
        raise FilterError("$sort expects an object")
    # Stable sorts applied from the least significant key
    for key, direction in reversed(list(spec.items())):
        if direction not in (1, -1):
            raise FilterError(f"Sort direction for {key} must be 1 or -1")
        present = [r for r in rows if _resolve(r, key) not in (_MISSING, None)]
        absent = [r for r in rows if _resolve(r, key) in (_MISSING, None)]
        try:
            present.sort(key=lambda r: _resolve(r, key), reverse=direction < 0)
        except TypeError as e:
            raise FilterError(f"Cannot sort on {key}: mixed types") from e
        rows = present + absent if direction > 0 else absent + present
    return rows


def _count_operand(stage: str, spec: Any) -> int:
    if isinstance(spec, bool) or not isinstance(spec, int) or spec < 0:
        raise FilterError(f"{stage} expects a non-negative integer")
    return spec


def run_pipeline(rows: Iterable[dict[str, Any]], pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Run an aggregation pipeline over materialized rows."""
    if not isinstance(pipeline, list):
        raise FilterError("Pipeline must be a list of stages")

    current = list(rows)
    for stage in pipeline:
        if not isinstance(stage, dict) or len(stage) != 1:
            raise FilterError("Each pipeline stage must be a single-key object")
        name, spec = next(iter(stage.items()))
        if name == "$match":
            current = [r for r in current if match_filter(r, spec)]
        elif name == "$sort":
            current = _sort(current, spec)
        elif name == "$skip":
            current = current[_count_operand(name, spec):]
        elif name == "$limit":
            current = current[: _count_operand(name, spec)]
        elif name == "$project":
            if not isinstance(spec, dict):
                raise FilterError("$project expects an object")
            include = [k for k, v in spec.items() if v]
            current = [{k: r[k] for k in include if k in r} for r in current]
        elif name == "$count":
            current = [{str(spec): len(current)}]
        elif name == "$group":
            current = _group(current, spec)
        else:
            raise FilterError(f"Unsupported pipeline stage: {name}")
    return current
