import pytest

from market.attributes import authoring, errors, schema, values
from market.models import ListingAttributeValue, ValueKind


@pytest.mark.django_db
def test_upsert_is_idempotent(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    year = car_attributes["year"]

    values.upsert(listing.id, year.id, "2020")
    values.upsert(listing.id, year.id, "2020")

    rows = ListingAttributeValue.objects.filter(listing=listing, definition=year)
    assert rows.count() == 1
    assert rows.get().kind == ValueKind.NUMBER
    assert rows.get().payload == "2020"


@pytest.mark.django_db
def test_upsert_replaces_existing_value(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    transmission = car_attributes["transmission"]

    values.upsert(listing.id, transmission.id, "Manual")
    stored = values.upsert(listing.id, transmission.id, "Automatic")

    assert stored.value == "Automatic"
    assert values.values_by_field_name(listing.id) == {"transmission": "Automatic"}


@pytest.mark.django_db
def test_round_trip_through_get_by_listing(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    values.upsert(listing.id, car_attributes["features"].id, ["Sunroof", "Navigation"])
    values.upsert(listing.id, car_attributes["condition"].id, "Used")
    values.upsert(listing.id, car_attributes["year"].id, 2018.0)

    stored = values.get_by_listing(listing.id)
    assert [(s.field_name, s.value) for s in stored] == [
        ("condition", "Used"),
        ("year", 2018),
        ("features", ["Sunroof", "Navigation"]),
    ]
    assert stored[0].as_dict()["field_type"] == "select"


@pytest.mark.django_db
def test_get_by_listing_follows_definition_order(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    values.upsert(listing.id, car_attributes["condition"].id, "New")
    values.upsert(listing.id, car_attributes["transmission"].id, "Manual")

    schema.reorder([car_attributes["transmission"].id, car_attributes["condition"].id])
    assert [s.field_name for s in values.get_by_listing(listing.id)] == ["transmission", "condition"]


@pytest.mark.django_db
def test_invalid_value_is_not_written(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    with pytest.raises(errors.OutOfRange):
        values.upsert(listing.id, car_attributes["year"].id, 1800)
    assert not ListingAttributeValue.objects.exists()

    with pytest.raises(errors.NotFound):
        values.upsert(listing.id, 999999, "x")
    with pytest.raises(errors.NotFound):
        values.upsert(999999, car_attributes["year"].id, 2000)


@pytest.mark.django_db
def test_empty_value_clears_optional_field(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    transmission = car_attributes["transmission"]
    values.upsert(listing.id, transmission.id, "Manual")

    assert values.upsert(listing.id, transmission.id, "") is None
    assert values.get_by_listing(listing.id) == []


@pytest.mark.django_db
def test_bulk_upsert_keeps_valid_entries_and_reports_failures(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)

    result = values.bulk_upsert(
        listing.id,
        [
            {"attribute_id": car_attributes["year"].id, "value": 2015},
            {"attribute_id": car_attributes["transmission"].id, "value": "CVT"},
            {"attribute_id": car_attributes["vin"].id, "value": "short"},
            {"attribute_id": 999999, "value": "x"},
            {"attribute_id": car_attributes["condition"].id, "value": "Used"},
        ],
    )

    assert not result.ok
    assert [s.field_name for s in result.saved] == ["year", "condition"]
    assert [e.code for e in result.errors] == ["not_an_option", "too_short", "not_found"]
    assert values.values_by_field_name(listing.id) == {"year": 2015, "condition": "Used"}


@pytest.mark.django_db
def test_bulk_upsert_rejects_hidden_fields(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"has_garage": False, "area_sqm": 80})

    result = values.bulk_upsert(listing.id, [{"attribute_id": garage_attributes["garage_spaces"].id, "value": 3}])

    assert [(e.field_name, e.code) for e in result.errors] == [("garage_spaces", "unexpected_field")]
    assert values.values_by_field_name(listing.id) == {"has_garage": False, "area_sqm": 80}


@pytest.mark.django_db
def test_bulk_upsert_evaluates_visibility_on_the_whole_batch(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"has_garage": False, "area_sqm": 80})

    result = values.bulk_upsert(
        listing.id,
        [
            {"attribute_id": garage_attributes["garage_spaces"].id, "value": 2},
            {"attribute_id": garage_attributes["has_garage"].id, "value": True},
        ],
    )

    assert result.ok
    assert values.values_by_field_name(listing.id) == {"has_garage": True, "garage_spaces": 2, "area_sqm": 80}


@pytest.mark.django_db
def test_upsert_rejects_hidden_field(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"has_garage": False, "area_sqm": 80})

    with pytest.raises(errors.UnexpectedField):
        values.upsert(listing.id, garage_attributes["garage_spaces"].id, 3)
    assert "garage_spaces" not in values.values_by_field_name(listing.id)


@pytest.mark.django_db
def test_hidden_required_field_can_be_cleared(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"has_garage": False, "area_sqm": 80})

    assert values.upsert(listing.id, garage_attributes["garage_spaces"].id, None) is None
    result = values.bulk_upsert(listing.id, [{"attribute_id": garage_attributes["garage_spaces"].id, "value": ""}])
    assert result.ok
    assert result.cleared == [garage_attributes["garage_spaces"].id]

    # Visible again, so the required rule applies.
    values.upsert(listing.id, garage_attributes["has_garage"].id, True)
    with pytest.raises(errors.RequiredFieldMissing):
        values.upsert(listing.id, garage_attributes["garage_spaces"].id, None)


@pytest.mark.django_db
def test_delete_is_idempotent(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    year = car_attributes["year"]
    values.upsert(listing.id, year.id, 2000)

    assert values.delete(listing.id, year.id) == 1
    assert values.delete(listing.id, year.id) == 0
    assert values.delete(999999, year.id) == 0


@pytest.mark.django_db
def test_delete_all_for_listing(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    other = make_listing(subcategory=cars)
    values.upsert(listing.id, car_attributes["year"].id, 2000)
    values.upsert(listing.id, car_attributes["condition"].id, "New")
    values.upsert(other.id, car_attributes["year"].id, 2001)

    assert values.delete_all_for_listing(listing.id) == 2
    assert values.delete_all_for_listing(listing.id) == 0
    assert values.values_by_field_name(other.id) == {"year": 2001}


@pytest.mark.django_db
def test_scope_is_advisory_by_default(car_attributes, houses, make_listing, caplog):
    listing = make_listing(category=houses)
    with caplog.at_level("WARNING", logger="classifieds.attributes"):
        values.upsert(listing.id, car_attributes["year"].id, 2000)
    assert "outside the listing's category" in caplog.text
    assert values.values_by_field_name(listing.id) == {"year": 2000}


@pytest.mark.django_db
def test_strict_scope_rejects_foreign_attribute(settings, car_attributes, houses, make_listing):
    settings.ATTRIBUTE_STRICT_CATEGORY_SCOPE = True
    listing = make_listing(category=houses)

    with pytest.raises(errors.AttributeOutsideCategory):
        values.upsert(listing.id, car_attributes["year"].id, 2000)
    assert not ListingAttributeValue.objects.exists()
