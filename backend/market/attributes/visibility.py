"""Conditional display rules for attribute definitions.

This is the single implementation used when a form is described to clients
(``/categories/<id>/attributes/visibility/``) and when a submission is
re-checked on the server before anything is written.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

EQUALS = "equals"
NOT_EQUALS = "not_equals"
CONTAINS = "contains"

OPERATORS = (EQUALS, NOT_EQUALS, CONTAINS)

# Accepted spellings of the dependency key; "field_name" is what gets stored.
_DEPENDS_ON_KEYS = ("field_name", "depends_on_field_name", "depends_on")


def _get(definition: Any, key: str, default: Any = None) -> Any:
    if isinstance(definition, Mapping):
        return definition.get(key, default)
    return getattr(definition, key, default)


def depends_on(condition: Mapping[str, Any] | None) -> str:
    if not condition:
        return ""
    for key in _DEPENDS_ON_KEYS:
        raw = condition.get(key)
        if raw:
            return str(raw).strip()
    return ""


def normalize_condition(condition: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Canonical stored shape, or None when the rule is absent."""
    if not condition:
        return None
    return {
        "field_name": depends_on(condition),
        "operator": str(condition.get("operator") or "").strip(),
        "value": condition.get("value"),
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion: "1" != 1 and True != 1."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def display_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(display_text(item) for item in value)
    return str(value)


def condition_matches(condition: Mapping[str, Any], current_values: Mapping[str, Any]) -> bool:
    dependent = current_values.get(depends_on(condition))
    expected = condition.get("value")
    operator = condition.get("operator")

    if operator == EQUALS:
        return strict_equals(dependent, expected)
    if operator == NOT_EQUALS:
        return not strict_equals(dependent, expected)
    if operator == CONTAINS:
        if isinstance(dependent, (list, tuple)):
            return any(strict_equals(item, expected) for item in dependent)
        # A falsy scalar (False, 0, "") is treated as no value at all.
        return display_text(expected) in (display_text(dependent) if dependent else "")
    return False


def is_visible(definition: Any, current_values: Mapping[str, Any]) -> bool:
    condition = _get(definition, "conditional_display")
    if not condition:
        return True
    return condition_matches(condition, current_values)


def visible(definitions: Iterable[Any], current_values: Mapping[str, Any] | None) -> set[str]:
    """Return the field names that must currently be shown, collected and validated.

    Rules are evaluated in one pass against ``current_values``; the computed
    visibility of other fields is never consulted.
    """
    values = current_values or {}
    return {
        str(_get(definition, "field_name"))
        for definition in definitions
        if is_visible(definition, values)
    }
