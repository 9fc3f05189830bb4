from __future__ import annotations

from dataclasses import dataclass

from market.models import Category, CategoryAttributeDefinition

from . import schema, visibility


@dataclass(frozen=True)
class DanglingReference:
    category_id: int
    attribute_id: int
    field_name: str
    depends_on: str


def dangling_references() -> list[DanglingReference]:
    """Conditional display rules whose target is not in the category's effective set.

    These can only appear after a referenced definition was deleted.
    """
    out: list[DanglingReference] = []
    known_by_category: dict[int, set[str]] = {}

    defs = CategoryAttributeDefinition.objects.filter(conditional_display__isnull=False).select_related("category")
    for d in defs.order_by("category_id", "order_index", "id"):
        target = visibility.depends_on(d.conditional_display)
        if not target:
            continue
        if d.category_id not in known_by_category:
            known_by_category[d.category_id] = {x.field_name for x in schema.effective_definitions(d.category)}
        if target not in known_by_category[d.category_id]:
            out.append(
                DanglingReference(
                    category_id=d.category_id,
                    attribute_id=d.id,
                    field_name=d.field_name,
                    depends_on=target,
                )
            )
    return out


def category_counts() -> list[tuple[Category, int, int]]:
    """(category, own definitions, own searchable definitions) for categories that have any."""
    rows = []
    for category in Category.objects.filter(attribute_definitions__isnull=False).distinct().order_by("slug"):
        own = schema.list_by_category(category.id)
        rows.append((category, len(own), sum(1 for d in own if d.is_searchable)))
    return rows
