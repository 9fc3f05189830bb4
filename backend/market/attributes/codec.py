"""Tagged-union encoding for attribute values.

Values are persisted as ``(kind, payload)`` where ``payload`` is canonical JSON
text. Canonical means: compact separators, no ASCII escaping. The filter compiler
relies on this to match stored rows textually.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from market.models import ValueKind


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _number(value: Any) -> int | float:
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def kind_of(value: Any) -> str:
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ValueKind.NUMBER
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    return ValueKind.STRING


def encode(value: Any) -> tuple[str, str]:
    """Return ``(kind, payload)`` for an already-validated value."""
    kind = kind_of(value)
    if kind == ValueKind.NUMBER:
        return kind, dumps(_number(value))
    if kind == ValueKind.ARRAY:
        return kind, dumps([str(item) for item in value])
    if kind == ValueKind.BOOLEAN:
        return kind, dumps(bool(value))
    return kind, dumps(str(value))


def decode(kind: str, payload: str) -> Any:
    value = json.loads(payload)
    if kind == ValueKind.ARRAY and not isinstance(value, list):
        return [value]
    return value


def raw_text(value: Any) -> str:
    """Unquoted text form, as written by older clients that skipped JSON encoding."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return dumps(_number(value))
    if value is None:
        return ""
    return str(value)


def array_element(value: Any) -> str:
    """The text an element occupies inside a stored array payload."""
    return dumps(raw_text(value))
