"""Per-listing attribute values.

Each write is a single ``INSERT ... ON CONFLICT (listing, definition) DO UPDATE``
so concurrent edits of one listing end with the last commit winning and never
with duplicate rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.db import transaction

from market.models import CategoryAttributeDefinition, Listing, ListingAttributeValue

from . import codec, schema, visibility
from .errors import AttributeCoreError, AttributeOutsideCategory, NotFound, UnexpectedField
from .validation import is_empty, validate

logger = logging.getLogger("classifieds.attributes")


@dataclass(frozen=True)
class StoredValue:
    listing_id: int
    attribute_id: int
    field_name: str
    field_label: str
    field_type: str
    order_index: int
    value: Any

    def as_dict(self) -> dict[str, Any]:
        return {
            "attribute_id": self.attribute_id,
            "field_name": self.field_name,
            "field_label": self.field_label,
            "field_type": self.field_type,
            "value": self.value,
        }


@dataclass
class BulkUpsertResult:
    saved: list[StoredValue] = field(default_factory=list)
    cleared: list[int] = field(default_factory=list)
    errors: list[AttributeCoreError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _listing(listing_id) -> Listing:
    listing = Listing.objects.select_related("category", "subcategory").filter(id=listing_id).first()
    if listing is None:
        raise NotFound(f"Listing {listing_id} not found", listing_id=listing_id)
    return listing


def _stored(listing_id: int, definition: CategoryAttributeDefinition, kind: str, payload: str) -> StoredValue:
    return StoredValue(
        listing_id=int(listing_id),
        attribute_id=int(definition.id),
        field_name=definition.field_name,
        field_label=definition.field_label,
        field_type=definition.field_type,
        order_index=int(definition.order_index),
        value=codec.decode(kind, payload),
    )


def check_scope(listing: Listing, definition: CategoryAttributeDefinition) -> None:
    """Advisory unless ATTRIBUTE_STRICT_CATEGORY_SCOPE is enabled."""
    allowed = {d.id for d in schema.effective_definitions(listing.attribute_category)}
    if definition.id in allowed:
        return
    if getattr(settings, "ATTRIBUTE_STRICT_CATEGORY_SCOPE", False):
        raise AttributeOutsideCategory(
            definition.field_name,
            f"{definition.field_name} does not belong to the listing's category",
            attribute_id=definition.id,
        )
    logger.warning(
        "attribute value written outside the listing's category",
        extra={"listing_id": listing.id, "attribute_id": definition.id, "category_id": definition.category_id},
    )


def write(listing_id, definition: CategoryAttributeDefinition, coerced: Any) -> StoredValue:
    """Store an already-validated value, replacing any existing one atomically."""
    kind, payload = codec.encode(coerced)
    ListingAttributeValue.objects.bulk_create(
        [ListingAttributeValue(listing_id=listing_id, definition=definition, kind=kind, payload=payload)],
        update_conflicts=True,
        unique_fields=["listing", "definition"],
        update_fields=["kind", "payload", "updated_at"],
    )
    return _stored(listing_id, definition, kind, payload)


def _validate_visible(definition: CategoryAttributeDefinition, value: Any, current_values: dict[str, Any]) -> Any:
    """Validate ``value`` against the visibility that ``current_values`` implies.

    A non-empty value for a hidden field is an ``UnexpectedField``; a hidden
    required field may still be cleared.
    """
    shown = visibility.is_visible(definition, current_values)
    if not shown and not is_empty(value):
        raise UnexpectedField(definition.field_name, f"{definition.field_name} is not shown for the current values")
    return validate(definition, value, visible=shown)


def upsert(listing_id, attribute_id, value: Any) -> StoredValue | None:
    """Validate and store one value.

    Visibility is evaluated on the stored values with this one applied. An
    empty value for an optional or hidden field clears the stored value and
    returns None.
    """
    listing = _listing(listing_id)
    definition = schema.get(attribute_id)
    check_scope(listing, definition)

    current = {**values_by_field_name(listing.id), definition.field_name: value}
    coerced = _validate_visible(definition, value, current)
    if coerced is None:
        delete(listing.id, definition.id)
        return None
    return write(listing.id, definition, coerced)


def bulk_upsert(listing_id, entries: list[dict[str, Any]]) -> BulkUpsertResult:
    """Apply each ``{attribute_id, value}`` entry independently.

    Visibility is evaluated once, on the stored values overlaid with every
    entry of the batch. Failing entries are reported in ``errors`` and leave
    nothing behind; the other entries are still written.
    """
    listing = _listing(listing_id)
    result = BulkUpsertResult()

    resolved: list[tuple[dict[str, Any], CategoryAttributeDefinition | None, AttributeCoreError | None]] = []
    for entry in entries:
        try:
            resolved.append((entry, schema.get(entry.get("attribute_id")), None))
        except AttributeCoreError as exc:
            resolved.append((entry, None, exc))

    current = values_by_field_name(listing.id)
    current.update({definition.field_name: entry.get("value") for entry, definition, _ in resolved if definition})

    for entry, definition, lookup_error in resolved:
        if lookup_error is not None:
            result.errors.append(lookup_error)
            continue
        try:
            with transaction.atomic():
                check_scope(listing, definition)
                coerced = _validate_visible(definition, entry.get("value"), current)
                if coerced is None:
                    delete(listing.id, definition.id)
                    result.cleared.append(definition.id)
                else:
                    result.saved.append(write(listing.id, definition, coerced))
        except AttributeCoreError as exc:
            result.errors.append(exc)

    return result


def get_by_listing(listing_id) -> list[StoredValue]:
    rows = (
        ListingAttributeValue.objects.filter(listing_id=listing_id)
        .select_related("definition")
        .order_by("definition__order_index", "definition__id")
    )
    return [_stored(row.listing_id, row.definition, row.kind, row.payload) for row in rows]


def values_by_field_name(listing_id) -> dict[str, Any]:
    return {stored.field_name: stored.value for stored in get_by_listing(listing_id)}


def delete(listing_id, attribute_id) -> int:
    deleted, _ = ListingAttributeValue.objects.filter(listing_id=listing_id, definition_id=attribute_id).delete()
    return deleted


def delete_all_for_listing(listing_id) -> int:
    deleted, _ = ListingAttributeValue.objects.filter(listing_id=listing_id).delete()
    return deleted
