"""
Log sanitising — bound anything before it reaches a log record.

Tool output and caller context are unbounded; diagnostics must not be.
Strings are length-capped, containers are item-capped and depth-capped,
and cycles are cut.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

MAX_STRING = 2048
MAX_ITEMS = 8
MAX_ENTRIES = 12
MAX_DEPTH = 3


def sanitize_for_log(value: Any, depth: int = 0, _seen: set[int] | None = None) -> Any:
    """Return a bounded, JSON-friendly copy of ``value``.

    Never raises; a failure is rendered as ``[sanitize error: ...]``.
    """
    seen = _seen if _seen is not None else set()
    try:
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            if len(value) > MAX_STRING:
                return f"{value[:MAX_STRING]}...<truncated>"
            return value
        if isinstance(value, BaseModel):
            value = value.model_dump()
        if isinstance(value, (list, tuple, set, frozenset)):
            if id(value) in seen:
                return "[circular]"
            if depth >= MAX_DEPTH:
                return f"[array({len(value)})]"
            seen.add(id(value))
            return [sanitize_for_log(item, depth + 1, seen) for item in list(value)[:MAX_ITEMS]]
        if isinstance(value, Mapping):
            if id(value) in seen:
                return "[circular]"
            if depth >= MAX_DEPTH:
                return "[object]"
            seen.add(id(value))
            out: dict[str, Any] = {}
            for i, (key, item) in enumerate(value.items()):
                if i >= MAX_ENTRIES:
                    break
                out[str(key)] = sanitize_for_log(item, depth + 1, seen)
            return out
        return sanitize_for_log(str(value), depth, seen)
    except Exception as e:
        return f"[sanitize error: {e}]"
