"""Attribute definitions owned by categories.

Writes are validated here so that a bad definition never reaches listings:
unknown field types, duplicate names, malformed rules and conditional display
rules pointing at fields that do not exist are all rejected at write time.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from django.db import IntegrityError, transaction

from market.models import Category, CategoryAttributeDefinition, FieldType, ListingAttributeValue

from . import visibility
from .errors import (
    AttributeConfigurationError,
    DuplicateFieldName,
    InvalidConditionalDisplay,
    InvalidFieldType,
    InvalidReorder,
    NotFound,
)
from .validation import CHOICE_TYPES, NUMERIC_TYPES, parse_calendar_date

logger = logging.getLogger("classifieds.attributes")

FIELD_TYPES = frozenset(FieldType.values)
OPTION_TYPES = CHOICE_TYPES | {FieldType.MULTISELECT}

UPDATABLE_FIELDS = (
    "field_name",
    "field_label",
    "field_type",
    "field_options",
    "placeholder",
    "validation_rules",
    "order_index",
    "conditional_display",
    "is_searchable",
    "is_required",
    "help_text",
)


def _ordered(qs):
    return qs.order_by("order_index", "id")


def _category(category_id) -> Category:
    category = Category.objects.filter(id=category_id).first() if category_id is not None else None
    if category is None:
        raise NotFound(f"Category {category_id} not found", category_id=category_id)
    return category


def get(attribute_id) -> CategoryAttributeDefinition:
    definition = CategoryAttributeDefinition.objects.filter(id=attribute_id).first()
    if definition is None:
        raise NotFound(f"Attribute {attribute_id} not found", attribute_id=attribute_id)
    return definition


def list_by_category(category_id) -> list[CategoryAttributeDefinition]:
    return list(_ordered(CategoryAttributeDefinition.objects.filter(category_id=category_id)))


def list_searchable_by_category(category_id) -> list[CategoryAttributeDefinition]:
    return list(_ordered(CategoryAttributeDefinition.objects.filter(category_id=category_id, is_searchable=True)))


def effective_definitions(category: Category, *, searchable_only: bool = False) -> list[CategoryAttributeDefinition]:
    """Definitions of ``category`` and all its ancestors; the nearest category wins on name collision."""
    ancestor_ids = category.ancestor_ids_including_self()
    if not ancestor_ids:
        return []

    order = list(reversed(ancestor_ids))
    pos = {cid: idx for idx, cid in enumerate(order)}

    qs = CategoryAttributeDefinition.objects.filter(category_id__in=ancestor_ids)
    if searchable_only:
        qs = qs.filter(is_searchable=True)
    defs = list(qs)
    defs.sort(key=lambda d: (pos.get(d.category_id, 10_000), d.order_index, d.id))

    by_name: dict[str, CategoryAttributeDefinition] = {}
    for d in defs:
        by_name[d.field_name] = d

    out = list(by_name.values())
    out.sort(key=lambda d: (d.order_index, d.id))
    return out


def _clean_field_name(raw: Any) -> str:
    name = str(raw or "").strip()
    if not name:
        raise AttributeConfigurationError("field_name is required")
    return name


def _clean_field_type(raw: Any) -> str:
    field_type = str(raw or "").strip()
    if field_type not in FIELD_TYPES:
        raise InvalidFieldType(
            f"Unsupported field type: {raw!r}",
            field_type=field_type,
            allowed=sorted(FIELD_TYPES),
        )
    return field_type


def _clean_order_index(raw: Any) -> int:
    if raw in (None, ""):
        return 0
    if isinstance(raw, bool):
        raise AttributeConfigurationError("order_index must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise AttributeConfigurationError("order_index must be an integer")


def _clean_options(raw: Any, field_type: str) -> list[Any]:
    options = raw if raw is not None else []
    if not isinstance(options, list):
        raise AttributeConfigurationError("field_options must be a list")
    for option in options:
        if isinstance(option, dict):
            if "value" not in option:
                raise AttributeConfigurationError("field_options objects need a 'value' key")
        elif isinstance(option, (list, tuple)):
            raise AttributeConfigurationError("field_options entries must be values or {value, label} objects")
    if field_type in OPTION_TYPES and not options:
        raise AttributeConfigurationError(f"field_options are required for {field_type} fields")
    return options


def _number_rule(rules: dict, key: str) -> float | None:
    raw = rules.get(key)
    if raw in (None, ""):
        return None
    if isinstance(raw, bool):
        raise AttributeConfigurationError(f"validation_rules.{key} must be a number")
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise AttributeConfigurationError(f"validation_rules.{key} must be a number")


def _clean_rules(raw: Any, field_type: str) -> dict[str, Any]:
    rules = raw if raw is not None else {}
    if not isinstance(rules, dict):
        raise AttributeConfigurationError("validation_rules must be an object")
    rules = dict(rules)

    if field_type in NUMERIC_TYPES:
        low, high = _number_rule(rules, "min"), _number_rule(rules, "max")
        if low is not None and high is not None and low > high:
            raise AttributeConfigurationError("validation_rules.min cannot exceed max")
    elif field_type == FieldType.DATE:
        for key in ("min", "max"):
            if rules.get(key) not in (None, "") and parse_calendar_date(rules[key]) is None:
                raise AttributeConfigurationError(f"validation_rules.{key} must be a date")

    for key in ("minLength", "maxLength"):
        value = _number_rule(rules, key)
        if value is not None and (value < 0 or not float(value).is_integer()):
            raise AttributeConfigurationError(f"validation_rules.{key} must be a non-negative integer")
        if value is not None:
            rules[key] = int(value)

    pattern = rules.get("pattern")
    if pattern not in (None, ""):
        try:
            re.compile(str(pattern))
        except re.error as exc:
            raise AttributeConfigurationError(f"validation_rules.pattern is not a valid regular expression: {exc}")

    return rules


def _clean_condition(raw: Any, *, field_name: str, known_names: set[str]) -> dict[str, Any] | None:
    if raw in (None, {}, ""):
        return None
    if not isinstance(raw, dict):
        raise InvalidConditionalDisplay("conditional_display must be an object")

    condition = visibility.normalize_condition(raw)
    target = condition["field_name"]
    if not target:
        raise InvalidConditionalDisplay("conditional_display needs the field it depends on")
    if condition["operator"] not in visibility.OPERATORS:
        raise InvalidConditionalDisplay(
            f"Unsupported conditional operator: {condition['operator']!r}",
            allowed=list(visibility.OPERATORS),
        )
    if target == field_name:
        raise InvalidConditionalDisplay(f"{field_name} cannot depend on itself", field_name=field_name)
    if target not in known_names:
        raise InvalidConditionalDisplay(
            f"{field_name} depends on unknown field {target!r}",
            field_name=field_name,
            depends_on=target,
        )
    return condition


def _known_names(category: Category, *, exclude_id=None) -> set[str]:
    return {d.field_name for d in effective_definitions(category) if d.id != exclude_id}


def _apply(definition: CategoryAttributeDefinition, data: dict[str, Any], known_names: set[str]) -> None:
    field_name = _clean_field_name(data.get("field_name", definition.field_name))
    field_type = _clean_field_type(data.get("field_type", definition.field_type))

    definition.field_name = field_name
    definition.field_type = field_type
    definition.field_label = str(data.get("field_label", definition.field_label) or field_name)
    definition.field_options = _clean_options(data.get("field_options", definition.field_options), field_type)
    definition.validation_rules = _clean_rules(data.get("validation_rules", definition.validation_rules), field_type)
    definition.conditional_display = _clean_condition(
        data.get("conditional_display", definition.conditional_display),
        field_name=field_name,
        known_names=known_names,
    )
    definition.placeholder = str(data.get("placeholder", definition.placeholder) or "")
    definition.help_text = str(data.get("help_text", definition.help_text) or "")
    definition.order_index = _clean_order_index(data.get("order_index", definition.order_index))
    definition.is_searchable = bool(data.get("is_searchable", definition.is_searchable))
    definition.is_required = bool(data.get("is_required", definition.is_required))


def _duplicate(definition: CategoryAttributeDefinition) -> DuplicateFieldName:
    return DuplicateFieldName(
        f"An attribute named {definition.field_name!r} already exists for this category",
        field_name=definition.field_name,
        category_id=definition.category_id,
    )


def _save(definition: CategoryAttributeDefinition) -> None:
    try:
        with transaction.atomic():
            definition.save()
    except IntegrityError:
        raise _duplicate(definition)


def _check_unique(definition: CategoryAttributeDefinition) -> None:
    clash = CategoryAttributeDefinition.objects.filter(category_id=definition.category_id, field_name=definition.field_name)
    if definition.pk is not None:
        clash = clash.exclude(pk=definition.pk)
    if clash.exists():
        raise _duplicate(definition)


def _prepare_new(category: Category, data: dict[str, Any], known_names: set[str]) -> CategoryAttributeDefinition:
    definition = CategoryAttributeDefinition(category=category)
    _apply(definition, data, known_names)
    _check_unique(definition)
    return definition


def _prepare_update(definition: CategoryAttributeDefinition, data: dict[str, Any]) -> CategoryAttributeDefinition:
    old_name = definition.field_name
    _apply(definition, data, _known_names(definition.category, exclude_id=definition.id))

    if definition.field_name != old_name:
        dependents = [
            d.field_name
            for d in CategoryAttributeDefinition.objects.filter(category_id=definition.category_id).exclude(id=definition.id)
            if visibility.depends_on(d.conditional_display) == old_name
        ]
        if dependents:
            raise InvalidConditionalDisplay(
                f"Cannot rename {old_name!r}: {', '.join(sorted(dependents))} depend on it",
                field_name=old_name,
                dependents=sorted(dependents),
            )
        _check_unique(definition)
    return definition


def _create(category: Category, data: dict[str, Any], known_names: set[str]) -> CategoryAttributeDefinition:
    definition = _prepare_new(category, data, known_names)
    _save(definition)
    logger.info(
        "attribute definition created",
        extra={"category_id": category.id, "attribute_id": definition.id, "field_name": definition.field_name},
    )
    return definition


def create(data: dict[str, Any]) -> CategoryAttributeDefinition:
    category = _category(data.get("category_id"))
    return _create(category, data, _known_names(category))


def check(data: dict[str, Any], *, attribute_id=None) -> CategoryAttributeDefinition:
    """Run the checks of ``create``, or of ``update`` when ``attribute_id`` is given, without writing.

    Returns the unsaved definition; raises the same errors the write would.
    """
    if attribute_id is None:
        category = _category(data.get("category_id"))
        return _prepare_new(category, data, _known_names(category))
    return _prepare_update(get(attribute_id), {k: v for k, v in data.items() if k in UPDATABLE_FIELDS})


def bulk_create(category_id, definitions: Iterable[dict[str, Any]]) -> list[CategoryAttributeDefinition]:
    """Create several definitions for one category; nothing is written if any one fails.

    Conditional display rules may reference other fields of the same batch.
    """
    category = _category(category_id)
    batch = [dict(item, category_id=category.id) for item in definitions]
    known = _known_names(category) | {str(item.get("field_name") or "").strip() for item in batch}

    with transaction.atomic():
        return [_create(category, item, known) for item in batch]


def update(attribute_id, partial: dict[str, Any]) -> CategoryAttributeDefinition:
    """Merge the provided fields into an existing definition."""
    definition = get(attribute_id)
    data = {k: v for k, v in partial.items() if k in UPDATABLE_FIELDS}
    if not data:
        return definition

    _prepare_update(definition, data)
    _save(definition)
    logger.info(
        "attribute definition updated",
        extra={"category_id": definition.category_id, "attribute_id": definition.id, "field_name": definition.field_name},
    )
    return definition


def reorder(ordered_ids: Iterable[Any], *, category_id=None) -> list[CategoryAttributeDefinition]:
    """Set ``order_index`` to each id's position. Applied in one transaction, or not at all.

    With ``category_id`` the ids may be a subset of the category's definitions;
    the ones left out keep their relative order and follow the reordered ones.
    The full category order is returned in that case.
    """
    try:
        ids = [int(x) for x in ordered_ids]
    except (TypeError, ValueError):
        raise InvalidReorder("attribute ids must be integers")
    if len(set(ids)) != len(ids):
        raise InvalidReorder("attribute ids must not repeat")

    with transaction.atomic():
        defs = {d.id: d for d in CategoryAttributeDefinition.objects.select_for_update().filter(id__in=ids)}
        missing = [i for i in ids if i not in defs]
        if missing:
            raise NotFound(f"Attributes not found: {missing}", missing=missing)

        ordered = [defs[i] for i in ids]
        if category_id is not None:
            foreign = [i for i in ids if defs[i].category_id != int(category_id)]
            if foreign:
                raise InvalidReorder(f"Attributes {foreign} do not belong to category {category_id}", foreign=foreign)
            rest = CategoryAttributeDefinition.objects.select_for_update().filter(category_id=category_id).exclude(id__in=ids)
            ordered.extend(_ordered(rest))

        for index, d in enumerate(ordered):
            d.order_index = index
        CategoryAttributeDefinition.objects.bulk_update(ordered, ["order_index"])

    logger.info("attribute definitions reordered", extra={"category_id": category_id})
    return ordered


def delete(attribute_id) -> int:
    """Delete a definition and every listing value stored against it.

    This is destructive and irreversible: the returned count is the number of
    listing values removed together with the definition.
    """
    with transaction.atomic():
        definition = get(attribute_id)
        values_deleted, _ = ListingAttributeValue.objects.filter(definition=definition).delete()
        dependents = [
            d.field_name
            for d in CategoryAttributeDefinition.objects.filter(category_id=definition.category_id).exclude(id=definition.id)
            if visibility.depends_on(d.conditional_display) == definition.field_name
        ]
        definition.delete()

    if dependents:
        logger.warning(
            "deleted attribute still referenced by conditional display rules: %s",
            ", ".join(sorted(dependents)),
            extra={"category_id": definition.category_id, "field_name": definition.field_name},
        )
    logger.info(
        "attribute definition deleted",
        extra={
            "category_id": definition.category_id,
            "attribute_id": attribute_id,
            "field_name": definition.field_name,
            "values_deleted": values_deleted,
        },
    )
    return values_deleted
