from __future__ import annotations

import random
from dataclasses import dataclass, field
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from market.attributes import authoring, schema, visibility
from market.attributes.errors import AttributeCoreError
from market.attributes.validation import option_values
from market.models import Category, CategoryAttributeDefinition, FieldType, Listing, ListingStatus

User = get_user_model()


@dataclass
class SeedCounts:
    created: dict[str, int] = field(default_factory=dict)
    updated: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)

    def inc(self, bucket: str, key: str, n: int = 1) -> None:
        target = getattr(self, bucket)
        target[key] = int(target.get(key, 0)) + int(n)


# (slug, name, parent slug)
CATEGORIES = [
    ("vehicles", "Vehicles", None),
    ("cars", "Cars", "vehicles"),
    ("motorcycles", "Motorcycles", "vehicles"),
    ("real-estate", "Real estate", None),
    ("apartments", "Apartments", "real-estate"),
    ("houses", "Houses", "real-estate"),
]

DEFINITIONS: dict[str, list[dict]] = {
    "vehicles": [
        {
            "field_name": "condition",
            "field_label": "Condition",
            "field_type": FieldType.SELECT,
            "field_options": ["New", "Used"],
            "is_searchable": True,
            "is_required": True,
        },
        {
            "field_name": "year",
            "field_label": "Year",
            "field_type": FieldType.NUMBER,
            "validation_rules": {"min": 1950, "max": 2030},
            "is_searchable": True,
        },
        {
            "field_name": "mileage",
            "field_label": "Mileage (km)",
            "field_type": FieldType.NUMBER,
            "validation_rules": {"min": 0},
            "conditional_display": {"field_name": "condition", "operator": "equals", "value": "Used"},
        },
    ],
    "cars": [
        {
            "field_name": "transmission",
            "field_label": "Transmission",
            "field_type": FieldType.RADIO,
            "field_options": ["Automatic", "Manual"],
            "is_searchable": True,
        },
        {
            "field_name": "fuel_type",
            "field_label": "Fuel type",
            "field_type": FieldType.SELECT,
            "field_options": [
                {"value": "petrol", "label": "Petrol"},
                {"value": "diesel", "label": "Diesel"},
                {"value": "hybrid", "label": "Hybrid"},
                {"value": "electric", "label": "Electric"},
            ],
            "is_searchable": True,
        },
        {
            "field_name": "features",
            "field_label": "Features",
            "field_type": FieldType.MULTISELECT,
            "field_options": ["Sunroof", "Navigation", "Leather seats", "Parking sensors"],
            "is_searchable": True,
        },
        {
            "field_name": "vin",
            "field_label": "VIN",
            "field_type": FieldType.TEXT,
            "placeholder": "17 characters",
            "validation_rules": {"minLength": 17, "maxLength": 17, "pattern": "[A-HJ-NPR-Z0-9]{17}"},
        },
    ],
    "real-estate": [
        {
            "field_name": "area_sqm",
            "field_label": "Area (m²)",
            "field_type": FieldType.NUMBER,
            "validation_rules": {"min": 1},
            "is_searchable": True,
            "is_required": True,
        },
        {
            "field_name": "rooms",
            "field_label": "Rooms",
            "field_type": FieldType.RANGE,
            "validation_rules": {"min": 0, "max": 20},
            "is_searchable": True,
        },
        {
            "field_name": "amenities",
            "field_label": "Amenities",
            "field_type": FieldType.MULTISELECT,
            "field_options": ["Pool", "WiFi", "Elevator", "Air conditioning", "Balcony"],
            "is_searchable": True,
        },
        {
            "field_name": "available_from",
            "field_label": "Available from",
            "field_type": FieldType.DATE,
        },
    ],
    "apartments": [
        {
            "field_name": "floor",
            "field_label": "Floor",
            "field_type": FieldType.NUMBER,
            "validation_rules": {"min": -2, "max": 200},
            "is_searchable": True,
        },
        {
            "field_name": "furnished",
            "field_label": "Furnished",
            "field_type": FieldType.CHECKBOX,
            "is_searchable": True,
        },
    ],
    "houses": [
        {
            "field_name": "has_garage",
            "field_label": "Garage",
            "field_type": FieldType.CHECKBOX,
            "is_searchable": True,
        },
        {
            "field_name": "garage_spaces",
            "field_label": "Garage spaces",
            "field_type": FieldType.NUMBER,
            "validation_rules": {"min": 1, "max": 10},
            "conditional_display": {"field_name": "has_garage", "operator": "equals", "value": True},
            "is_required": True,
        },
        {
            "field_name": "contact_email",
            "field_label": "Contact e-mail",
            "field_type": FieldType.EMAIL,
            "help_text": "Shown to buyers after they send a message.",
        },
    ],
}


def _gen_value(defn: CategoryAttributeDefinition, rnd: random.Random):
    t = defn.field_type
    rules = defn.validation_rules or {}

    if t == FieldType.CHECKBOX:
        return rnd.random() < 0.5
    if t in (FieldType.SELECT, FieldType.RADIO):
        options = option_values(defn.field_options)
        return rnd.choice(options) if options else None
    if t == FieldType.MULTISELECT:
        options = option_values(defn.field_options)
        return rnd.sample(options, k=rnd.randint(1, min(3, len(options)))) if options else []
    if t in (FieldType.NUMBER, FieldType.RANGE):
        low = int(rules.get("min", 0))
        high = int(rules.get("max", low + 500))
        return rnd.randint(low, high)
    if t == FieldType.DATE:
        return f"2026-{rnd.randint(1, 12):02d}-{rnd.randint(1, 28):02d}"
    # Free text fields are left empty; they carry per-field formats.
    return None


class Command(BaseCommand):
    help = "Seed example categories with attribute definitions (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--listings", type=int, default=0, help="Also create N demo listings per leaf category")
        parser.add_argument("--seller", type=str, default="seed", help="Username owning demo listings")
        parser.add_argument("--seed", type=int, default=1, help="Random seed for demo values")

    def handle(self, *args, **options):
        listings_per_leaf = int(options.get("listings") or 0)
        if listings_per_leaf < 0:
            raise CommandError("--listings must be >= 0")

        counts = SeedCounts()
        with transaction.atomic():
            categories = self._seed_categories(counts)
            for slug, items in DEFINITIONS.items():
                self._seed_definitions(categories[slug], items, counts)

            if listings_per_leaf:
                rnd = random.Random(int(options.get("seed") or 1))
                seller, _ = User.objects.get_or_create(username=str(options.get("seller") or "seed"))
                leaves = [categories[slug] for slug, _, parent in CATEGORIES if parent is not None]
                for leaf in leaves:
                    for i in range(listings_per_leaf):
                        self._seed_listing(leaf, seller, rnd, i, counts)

        self.stdout.write(self.style.SUCCESS(f"created={counts.created}"))
        self.stdout.write(f"updated={counts.updated}")
        self.stdout.write(f"skipped={counts.skipped}")

    def _seed_categories(self, counts: SeedCounts) -> dict[str, Category]:
        out: dict[str, Category] = {}
        for slug, name, parent_slug in CATEGORIES:
            parent = out.get(parent_slug) if parent_slug else None
            category, created = Category.objects.get_or_create(slug=slug, defaults={"name": name, "parent": parent})
            counts.inc("created" if created else "skipped", "categories")
            out[slug] = category
        return out

    def _seed_definitions(self, category: Category, items: list[dict], counts: SeedCounts) -> None:
        existing = {d.field_name: d for d in schema.list_by_category(category.id)}
        fresh, changed = [], []
        for index, item in enumerate(items):
            data = dict(item, order_index=index)
            current = existing.get(item["field_name"])
            if current is None:
                fresh.append(data)
            else:
                changed.append((current.id, data))

        # New fields first so updated rules may depend on them.
        if fresh:
            schema.bulk_create(category.id, fresh)
            counts.inc("created", "attribute_definitions", len(fresh))
        for attribute_id, data in changed:
            schema.update(attribute_id, data)
            counts.inc("updated", "attribute_definitions")

    def _seed_listing(self, category: Category, seller, rnd: random.Random, index: int, counts: SeedCounts) -> None:
        title = f"{category.name} #{index + 1}"
        if Listing.objects.filter(seller=seller, subcategory=category, title=title).exists():
            counts.inc("skipped", "listings")
            return

        listing = Listing.objects.create(
            seller=seller,
            title=title,
            price=Decimal(rnd.randint(1, 500) * 100),
            category=category.parent or category,
            subcategory=category if category.parent_id else None,
            status=ListingStatus.PUBLISHED,
        )

        definitions = schema.effective_definitions(category)
        submitted = {}
        for defn in definitions:
            value = _gen_value(defn, rnd)
            if value not in (None, "", []):
                submitted[defn.field_name] = value
        # Fields hidden by the generated values must not be sent.
        shown = visibility.visible(definitions, submitted)
        submitted = {k: v for k, v in submitted.items() if k in shown}

        try:
            authoring.submit(listing, submitted)
        except AttributeCoreError as exc:
            self.stderr.write(f"listing {listing.id}: {exc}")
            listing.delete()
            counts.inc("skipped", "listings")
            return
        counts.inc("created", "listings")
