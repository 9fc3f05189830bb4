import pytest

from market.attributes import authoring, errors, values
from market.models import Category, ListingAttributeValue


@pytest.mark.django_db
def test_hidden_field_submission_is_rejected(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)

    with pytest.raises(errors.AttributeValidationFailed) as exc:
        authoring.submit(listing, {"area_sqm": 120, "has_garage": False, "garage_spaces": 2})

    assert [(e.field_name, e.code) for e in exc.value.errors] == [("garage_spaces", "unexpected_field")]
    assert not ListingAttributeValue.objects.exists()


@pytest.mark.django_db
def test_required_only_when_visible(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)

    with pytest.raises(errors.AttributeValidationFailed) as exc:
        authoring.submit(listing, {"area_sqm": 120, "has_garage": True})
    assert exc.value.by_field() == {
        "garage_spaces": [{"code": "required", "message": "garage_spaces is required", "field_name": "garage_spaces"}]
    }

    stored = authoring.submit(listing, {"area_sqm": 120, "has_garage": False})
    assert {s.field_name: s.value for s in stored} == {"has_garage": False, "area_sqm": 120}


@pytest.mark.django_db
def test_all_errors_are_reported_together(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)

    with pytest.raises(errors.AttributeValidationFailed) as exc:
        authoring.submit(listing, {"area_sqm": 0, "has_garage": True, "garage_spaces": 50})

    assert sorted(e.field_name for e in exc.value.errors) == ["area_sqm", "garage_spaces"]
    assert {e.code for e in exc.value.errors} == {"out_of_range"}
    assert not ListingAttributeValue.objects.exists()


@pytest.mark.django_db
def test_unknown_field_is_unexpected(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    with pytest.raises(errors.AttributeValidationFailed) as exc:
        authoring.submit(listing, {"area_sqm": 80, "pool": True})
    assert [e.code for e in exc.value.errors] == ["unexpected_field"]


@pytest.mark.django_db
def test_visibility_uses_stored_values(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"area_sqm": 90, "has_garage": True, "garage_spaces": 1})

    # has_garage is already stored as True, so garage_spaces may be edited alone.
    stored = authoring.submit(listing, {"garage_spaces": 3})
    assert {s.field_name: s.value for s in stored}["garage_spaces"] == 3


@pytest.mark.django_db
def test_values_of_newly_hidden_fields_are_pruned(garage_attributes, houses, make_listing):
    listing = make_listing(category=houses)
    authoring.submit(listing, {"area_sqm": 90, "has_garage": True, "garage_spaces": 2})

    authoring.submit(listing, {"has_garage": False})
    assert values.values_by_field_name(listing.id) == {"has_garage": False, "area_sqm": 90}


@pytest.mark.django_db
def test_pruning_can_be_disabled(settings, garage_attributes, houses, make_listing):
    settings.ATTRIBUTE_PRUNE_HIDDEN_VALUES = False
    listing = make_listing(category=houses)
    authoring.submit(listing, {"area_sqm": 90, "has_garage": True, "garage_spaces": 2})

    authoring.submit(listing, {"has_garage": False})
    assert values.values_by_field_name(listing.id)["garage_spaces"] == 2


@pytest.mark.django_db
def test_replace_clears_values_not_submitted(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    authoring.submit(listing, {"condition": "Used", "transmission": "Manual"})

    authoring.submit(listing, {"condition": "New"}, replace=True)
    assert values.values_by_field_name(listing.id) == {"condition": "New"}


@pytest.mark.django_db
def test_prune_outside_category(car_attributes, cars, make_listing):
    listing = make_listing(subcategory=cars)
    authoring.submit(listing, {"condition": "Used", "transmission": "Manual"})

    listing.category = Category.objects.get(id=cars.parent_id)
    listing.subcategory = None
    listing.save()

    assert authoring.prune_outside_category(listing) == 1
    assert values.values_by_field_name(listing.id) == {"condition": "Used"}
