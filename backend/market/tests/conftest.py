import pytest

from market.attributes import schema
from market.models import Category, Listing, ListingStatus


@pytest.fixture
def seller(django_user_model):
    return django_user_model.objects.create_user(username="seller", password="pass1234")


@pytest.fixture
def vehicles(db):
    return Category.objects.create(name="Vehicles", slug="vehicles")


@pytest.fixture
def cars(vehicles):
    return Category.objects.create(name="Cars", slug="cars", parent=vehicles)


@pytest.fixture
def houses(db):
    return Category.objects.create(name="Houses", slug="houses")


@pytest.fixture
def make_listing(seller, vehicles):
    def _make(subcategory=None, category=None, title="Listing"):
        return Listing.objects.create(
            seller=seller,
            title=title,
            category=category or (subcategory.parent if subcategory is not None else vehicles),
            subcategory=subcategory,
            status=ListingStatus.PUBLISHED,
        )

    return _make


@pytest.fixture
def car_attributes(vehicles, cars):
    """condition/year on Vehicles; transmission/features/vin on Cars."""
    schema.bulk_create(
        vehicles.id,
        [
            {
                "field_name": "condition",
                "field_type": "select",
                "field_options": ["New", "Used"],
                "is_searchable": True,
            },
            {
                "field_name": "year",
                "field_type": "number",
                "validation_rules": {"min": 1950, "max": 2030},
                "is_searchable": True,
            },
        ],
    )
    schema.bulk_create(
        cars.id,
        [
            {
                "field_name": "transmission",
                "field_type": "radio",
                "field_options": ["Automatic", "Manual"],
                "is_searchable": True,
            },
            {
                "field_name": "features",
                "field_type": "multiselect",
                "field_options": ["Sunroof", "Navigation", "Leather seats"],
                "is_searchable": True,
            },
            {
                "field_name": "vin",
                "field_type": "text",
                "validation_rules": {"minLength": 17, "maxLength": 17},
            },
        ],
    )
    return {d.field_name: d for d in schema.effective_definitions(cars)}


@pytest.fixture
def garage_attributes(houses):
    return {
        d.field_name: d
        for d in schema.bulk_create(
            houses.id,
            [
                {"field_name": "has_garage", "field_type": "checkbox", "is_searchable": True},
                {
                    "field_name": "garage_spaces",
                    "field_type": "number",
                    "validation_rules": {"min": 1, "max": 10},
                    "conditional_display": {"field_name": "has_garage", "operator": "equals", "value": True},
                    "is_required": True,
                },
                {
                    "field_name": "area_sqm",
                    "field_type": "number",
                    "validation_rules": {"min": 1},
                    "is_required": True,
                },
            ],
        )
    }
