"""Shared utility functions used across Advertis modules."""
from __future__ import annotations

import json
import math
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def compact_json(value: Any) -> str:
    """Serialize without whitespace, the form used for content-size checks."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (``round`` rounds to even)."""
    return int(math.floor(value + 0.5))

