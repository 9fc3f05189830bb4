"""Compile attribute filters into listing predicates.

Values are stored as type-erased JSON text, so one logical value can live in a
row in several shapes: the canonical JSON encoding, an unquoted legacy form
("Automatic", 2020, true) or as an element of an array (multiselect). A clause
matches a listing when any value row for the resolved attribute ids takes one
of those shapes. Clauses are ANDed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db.models import Exists, OuterRef, Q, QuerySet

from market.models import Category, CategoryAttributeDefinition, Listing, ListingAttributeValue, ValueKind

from . import codec
from .errors import AttributeNotSearchable, FilterRequestTooLarge, NotFound, UnknownAttribute
from .validation import is_empty

logger = logging.getLogger("classifieds.attributes")

QUERY_PREFIX = "attr_"


@dataclass(frozen=True)
class AttributeClause:
    field_name: str
    definition_ids: tuple[int, ...]
    value: Any

    @property
    def exact(self) -> str:
        return codec.dumps(self.value)

    @property
    def legacy(self) -> str:
        return codec.raw_text(self.value)

    @property
    def element(self) -> str:
        return codec.array_element(self.value)

    def matching_values(self) -> QuerySet:
        return ListingAttributeValue.objects.filter(definition_id__in=self.definition_ids).filter(
            Q(payload=self.exact)
            | Q(payload=self.legacy)
            | Q(kind=ValueKind.ARRAY, payload__icontains=self.element)
        )

    def predicate(self) -> Exists:
        return Exists(self.matching_values().filter(listing_id=OuterRef("pk")))


@dataclass(frozen=True)
class CompiledFilter:
    category: Category
    category_ids: tuple[int, ...]
    clauses: tuple[AttributeClause, ...]

    def candidates(self) -> QuerySet:
        """Listings filed under the category or any of its descendants, at either level."""
        ids = list(self.category_ids)
        return Listing.objects.filter(Q(category_id__in=ids) | Q(subcategory_id__in=ids))

    def apply(self, queryset: QuerySet) -> QuerySet:
        for clause in self.clauses:
            queryset = queryset.filter(clause.predicate())
        return queryset

    def listing_ids(self) -> set[int]:
        return set(self.apply(self.candidates()).values_list("id", flat=True))


def _resolve_category(category) -> Category:
    if isinstance(category, Category):
        return category
    found = Category.objects.filter(id=category).first() if category not in (None, "") else None
    if found is None:
        raise NotFound(f"Category {category} not found", category_id=category)
    return found


def effective_value(raw: Any) -> Any:
    # Only the first element of a multi-value filter is used.
    if isinstance(raw, (list, tuple)):
        return raw[0] if raw else None
    return raw


def compile_filters(category, filters: Mapping[str, Any], *, subcategory=None) -> CompiledFilter:
    """Turn ``{field_name: value_or_list}`` into a predicate over listings.

    Field names are resolved against searchable definitions of the category's
    lineage (its ancestors, itself and its descendants, or the subcategory's when
    one is given). An unknown name raises ``UnknownAttribute``; it is never
    dropped, since that would widen the result set.
    """
    scope = _resolve_category(subcategory if subcategory not in (None, "") else category)

    limit = int(getattr(settings, "ATTRIBUTE_FILTER_MAX_FIELDS", 20))
    if len(filters) > limit:
        raise FilterRequestTooLarge(f"At most {limit} attribute filters are allowed", limit=limit)

    subtree = scope.descendant_ids_including_self()
    lineage = set(scope.ancestor_ids_including_self()) | set(subtree)

    by_name: dict[str, list[CategoryAttributeDefinition]] = {}
    for d in CategoryAttributeDefinition.objects.filter(category_id__in=lineage, field_name__in=list(filters.keys())):
        by_name.setdefault(d.field_name, []).append(d)

    clauses: list[AttributeClause] = []
    for field_name, raw in filters.items():
        defs = by_name.get(field_name)
        if not defs:
            raise UnknownAttribute(f"Unknown attribute filter: {field_name}", field_name=field_name)
        searchable = [d for d in defs if d.is_searchable]
        if not searchable:
            raise AttributeNotSearchable(f"Attribute is not filterable: {field_name}", field_name=field_name)

        value = effective_value(raw)
        if is_empty(value):
            continue
        clauses.append(
            AttributeClause(
                field_name=field_name,
                definition_ids=tuple(sorted(d.id for d in searchable)),
                value=value,
            )
        )

    logger.debug(
        "compiled attribute filter with %d clause(s): %s",
        len(clauses),
        ", ".join(c.field_name for c in clauses),
        extra={"category_id": scope.id},
    )
    return CompiledFilter(category=scope, category_ids=tuple(subtree), clauses=tuple(clauses))


def filters_from_query(query_params) -> dict[str, Any]:
    """Collect ``attr_<field_name>`` parameters; repeated parameters become lists."""
    out: dict[str, Any] = {}
    for key in query_params.keys():
        name = str(key)
        if not name.startswith(QUERY_PREFIX):
            continue
        field_name = name[len(QUERY_PREFIX) :]
        if not field_name:
            continue
        if hasattr(query_params, "getlist"):
            items = query_params.getlist(key)
            out[field_name] = items if len(items) > 1 else (items[0] if items else "")
        else:
            out[field_name] = query_params[key]
    return out
