"""Listing submissions: visibility-aware validation, then one atomic write."""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.db import transaction

from market.models import Listing, ListingAttributeValue

from . import schema, values, visibility
from .errors import AttributeValidationFailed, UnexpectedField
from .validation import is_empty, validate_many

logger = logging.getLogger("classifieds.attributes")


def submit(listing: Listing, submitted: dict[str, Any] | None, *, replace: bool = False) -> list[values.StoredValue]:
    """Validate ``{field_name: value}`` for ``listing`` and store it.

    Visibility is computed from the stored values overlaid with the submitted
    ones. A value sent for a hidden field is rejected, and a required field that
    is visible but missing is reported. All problems are raised together in one
    ``AttributeValidationFailed``; nothing is written in that case.

    With ``replace`` the submission is the complete set of values and anything
    not submitted is cleared.
    """
    submitted = dict(submitted or {})
    definitions = schema.effective_definitions(listing.attribute_category)
    by_name = {d.field_name: d for d in definitions}

    stored = {} if replace or listing.pk is None else values.values_by_field_name(listing.pk)
    current = {**stored, **submitted}
    shown = visibility.visible(definitions, current)

    errors = []
    for name, raw in submitted.items():
        if name not in by_name:
            errors.append(UnexpectedField(name, f"{name} is not an attribute of this category"))
        elif name not in shown and not is_empty(raw):
            errors.append(UnexpectedField(name, f"{name} is not shown for the current values"))

    cleaned, failures = validate_many([d for d in definitions if d.field_name in shown], current, shown)
    errors.extend(failures)
    if errors:
        raise AttributeValidationFailed(errors)

    prune = bool(getattr(settings, "ATTRIBUTE_PRUNE_HIDDEN_VALUES", True))
    with transaction.atomic():
        for name, definition in by_name.items():
            hidden = name not in shown
            if name in cleaned and not hidden:
                values.write(listing.pk, definition, cleaned[name])
            elif (hidden and prune) or name in submitted or replace:
                ListingAttributeValue.objects.filter(listing_id=listing.pk, definition=definition).delete()

    logger.info(
        "listing attributes saved",
        extra={"listing_id": listing.pk, "category_id": listing.attribute_category.id},
    )
    return values.get_by_listing(listing.pk)


def prune_outside_category(listing: Listing) -> int:
    """Remove values whose definitions left the listing's effective set, e.g. after a category change."""
    allowed = [d.id for d in schema.effective_definitions(listing.attribute_category)]
    deleted, _ = ListingAttributeValue.objects.filter(listing_id=listing.pk).exclude(definition_id__in=allowed).delete()
    if deleted:
        logger.info(
            "pruned attribute values outside the listing's category",
            extra={"listing_id": listing.pk, "values_deleted": deleted},
        )
    return deleted


def visible_for(listing: Listing, current_values: dict[str, Any] | None = None) -> set[str]:
    definitions = schema.effective_definitions(listing.attribute_category)
    if current_values is None:
        current_values = values.values_by_field_name(listing.pk)
    return visibility.visible(definitions, current_values)
