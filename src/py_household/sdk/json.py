"""JSON presenter for the py_household SDK.

- to_dict(obj): convert DTOs and nested structures to JSON-safe forms
  (dataclasses via ``asdict``; Decimal -> str; date -> ISO; datetime -> UTC ISO8601 with Z)
- to_json(data): deterministic ``json.dumps`` (sorted keys, compact, non-ASCII kept)

Money stays in integer minor units; use ``domain.money.format_major`` for display.
"""
from __future__ import annotations

import json as _json
from dataclasses import asdict, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

__all__ = ["to_dict", "to_json"]


def _is_primitive(x: Any) -> bool:
    return isinstance(x, (str, int, float, bool)) or x is None


def _serialize_datetime(dt: datetime) -> str:
    """Serialize datetime to UTC ISO8601 with trailing 'Z'. Naive -> UTC.

    Example: 2024-01-02T03:04:05Z
    """
    dt = dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    dt = dt.replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def to_dict(obj: Any) -> Any:
    """Convert input to a JSON-safe structure (recursively)."""
    if isinstance(obj, Enum):
        return obj.value
    if _is_primitive(obj):
        return obj
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return _serialize_datetime(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_dict(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): to_dict(v) for k, v in obj.items()}
    if is_dataclass(obj) and not isinstance(obj, type):
        return {str(k): to_dict(v) for k, v in asdict(obj).items()}
    return str(obj)


def to_json(data: Any) -> str:
    """Dump input as a deterministic JSON string using ``to_dict`` normalization."""
    return _json.dumps(to_dict(data), ensure_ascii=False, separators=(",", ":"), sort_keys=True)
