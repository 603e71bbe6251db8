"""JSON-lines flattening."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from .base import NormalizedLine


def _stringify(value: Any) -> str:
    """Render a scalar (or a too-deep container) as matchable text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(_stringify(v) for v in value if v is not None)
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _items(value: Mapping[str, Any] | list[Any]):
    if isinstance(value, Mapping):
        return value.items()
    return ((str(i), v) for i, v in enumerate(value))


def flatten_object(obj: Mapping[str, Any]) -> str:
    """Flatten one nesting level into space-joined ``key=value`` pairs.

    Nested containers become ``parent_child=value``; None values are skipped.
    """
    parts: list[str] = []
    for key, value in obj.items():
        if value is None:
            continue
        if isinstance(value, (Mapping, list)):
            for sub_key, sub_val in _items(value):
                if sub_val is not None:
                    parts.append(f"{key}_{sub_key}={_stringify(sub_val)}")
        else:
            parts.append(f"{key}={_stringify(value)}")
    return " ".join(parts)


def flatten_json_line(line: str) -> NormalizedLine:
    """Flatten a JSON object line; malformed input keeps the raw text."""
    try:
        obj = json.loads(line)
    except (ValueError, RecursionError):
        return NormalizedLine.failed(line)

    if not isinstance(obj, Mapping):
        return NormalizedLine.passthrough(line)
    return NormalizedLine(text=flatten_object(obj))
