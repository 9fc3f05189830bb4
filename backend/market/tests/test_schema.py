import pytest

from market.attributes import errors, schema, values
from market.models import CategoryAttributeDefinition, ListingAttributeValue


def _create(category, name, **extra):
    return schema.create({"category_id": category.id, "field_name": name, "field_type": "text", **extra})


@pytest.mark.django_db
def test_list_by_category_orders_by_order_index_then_id(cars):
    c = _create(cars, "c", order_index=2)
    a = _create(cars, "a", order_index=1)
    b = _create(cars, "b", order_index=1)
    d = _create(cars, "d", order_index=0)

    assert [x.id for x in schema.list_by_category(cars.id)] == [d.id, a.id, b.id, c.id]
    assert schema.list_by_category(cars.id + 1000) == []


@pytest.mark.django_db
def test_list_searchable_by_category(cars):
    _create(cars, "notes")
    searchable = _create(cars, "color", is_searchable=True)
    assert [d.id for d in schema.list_searchable_by_category(cars.id)] == [searchable.id]


@pytest.mark.django_db
def test_create_rejects_duplicates_and_unknown_types(cars):
    _create(cars, "vin")
    with pytest.raises(errors.DuplicateFieldName):
        _create(cars, "vin")
    with pytest.raises(errors.InvalidFieldType) as exc:
        schema.create({"category_id": cars.id, "field_name": "x", "field_type": "colour"})
    assert "colour" in exc.value.message
    with pytest.raises(errors.NotFound):
        schema.create({"category_id": 999999, "field_name": "x", "field_type": "text"})


@pytest.mark.django_db
def test_create_validates_options_and_rules(cars):
    with pytest.raises(errors.AttributeConfigurationError):
        schema.create({"category_id": cars.id, "field_name": "fuel", "field_type": "select"})
    with pytest.raises(errors.AttributeConfigurationError):
        _create(cars, "year", field_type="number", validation_rules={"min": 10, "max": 1})
    with pytest.raises(errors.AttributeConfigurationError):
        _create(cars, "vin", validation_rules={"pattern": "[unclosed"})
    assert CategoryAttributeDefinition.objects.count() == 0


@pytest.mark.django_db
def test_length_rules_are_stored_as_integers(cars):
    vin = _create(cars, "vin", validation_rules={"minLength": "5.0", "maxLength": 17.0})
    assert vin.validation_rules == {"minLength": 5, "maxLength": 17}

    with pytest.raises(errors.AttributeConfigurationError):
        _create(cars, "plate", validation_rules={"minLength": "2.5"})


@pytest.mark.django_db
def test_conditional_display_must_reference_known_field(vehicles, cars):
    _create(vehicles, "condition")

    with pytest.raises(errors.InvalidConditionalDisplay):
        _create(cars, "mileage", conditional_display={"field_name": "missing", "operator": "equals", "value": "x"})
    with pytest.raises(errors.InvalidConditionalDisplay):
        _create(cars, "mileage", conditional_display={"field_name": "mileage", "operator": "equals", "value": "x"})
    with pytest.raises(errors.InvalidConditionalDisplay):
        _create(cars, "mileage", conditional_display={"field_name": "condition", "operator": "gt", "value": 1})

    # Inherited fields may be referenced; the stored rule uses the canonical key.
    mileage = _create(cars, "mileage", conditional_display={"depends_on": "condition", "operator": "equals", "value": "Used"})
    assert mileage.conditional_display == {"field_name": "condition", "operator": "equals", "value": "Used"}


@pytest.mark.django_db
def test_update_merges_provided_fields_only(cars):
    d = _create(cars, "vin", field_label="VIN", placeholder="17 chars", is_searchable=True)

    updated = schema.update(d.id, {"field_label": "Chassis number", "unknown": "ignored"})
    assert updated.field_label == "Chassis number"
    assert updated.placeholder == "17 chars"
    assert updated.is_searchable is True

    with pytest.raises(errors.NotFound):
        schema.update(999999, {"field_label": "x"})
    with pytest.raises(errors.InvalidFieldType):
        schema.update(d.id, {"field_type": "blob"})


@pytest.mark.django_db
def test_update_cannot_rename_into_duplicate_or_away_from_dependents(cars):
    _create(cars, "has_garage", field_type="checkbox")
    spaces = _create(
        cars,
        "garage_spaces",
        conditional_display={"field_name": "has_garage", "operator": "equals", "value": True},
    )
    notes = _create(cars, "notes")
    garage = CategoryAttributeDefinition.objects.get(field_name="has_garage")

    with pytest.raises(errors.DuplicateFieldName):
        schema.update(notes.id, {"field_name": "has_garage"})
    with pytest.raises(errors.InvalidConditionalDisplay):
        schema.update(spaces.id, {"field_name": "has_garage"})
    with pytest.raises(errors.InvalidConditionalDisplay):
        schema.update(garage.id, {"field_name": "garage"})
    assert CategoryAttributeDefinition.objects.filter(field_name="has_garage").exists()


@pytest.mark.django_db
def test_reorder_assigns_positions(cars):
    a, b, c = (_create(cars, name) for name in ("a", "b", "c"))
    schema.reorder([c.id, a.id, b.id])
    assert [d.field_name for d in schema.list_by_category(cars.id)] == ["c", "a", "b"]


@pytest.mark.django_db
def test_partial_reorder_within_category_moves_the_rest_after(cars):
    a, b, c, d = (_create(cars, name, order_index=i) for i, name in enumerate("abcd"))

    ordered = schema.reorder([d.id, b.id], category_id=cars.id)

    assert [x.field_name for x in ordered] == ["d", "b", "a", "c"]
    assert [(x.field_name, x.order_index) for x in schema.list_by_category(cars.id)] == [
        ("d", 0),
        ("b", 1),
        ("a", 2),
        ("c", 3),
    ]


@pytest.mark.django_db
def test_reorder_is_all_or_nothing(cars, vehicles):
    a = _create(cars, "a", order_index=5)
    b = _create(cars, "b", order_index=6)
    other = _create(vehicles, "z", order_index=7)

    with pytest.raises(errors.NotFound):
        schema.reorder([b.id, 999999, a.id])
    with pytest.raises(errors.InvalidReorder):
        schema.reorder([b.id, b.id, a.id])
    with pytest.raises(errors.InvalidReorder):
        schema.reorder([b.id, other.id, a.id], category_id=cars.id)

    assert {d.field_name: d.order_index for d in CategoryAttributeDefinition.objects.all()} == {"a": 5, "b": 6, "z": 7}


@pytest.mark.django_db
def test_delete_cascades_values(cars, make_listing):
    vin = _create(cars, "vin")
    color = _create(cars, "color")
    first = make_listing(subcategory=cars)
    second = make_listing(subcategory=cars)
    values.upsert(first.id, vin.id, "ABC")
    values.upsert(second.id, vin.id, "DEF")
    values.upsert(first.id, color.id, "red")

    assert schema.delete(vin.id) == 2
    assert not CategoryAttributeDefinition.objects.filter(id=vin.id).exists()
    assert [v.field_name for v in values.get_by_listing(first.id)] == ["color"]
    assert values.get_by_listing(second.id) == []
    assert ListingAttributeValue.objects.count() == 1

    with pytest.raises(errors.NotFound):
        schema.delete(vin.id)


@pytest.mark.django_db
def test_bulk_create_is_all_or_nothing(cars):
    with pytest.raises(errors.InvalidFieldType):
        schema.bulk_create(
            cars.id,
            [
                {"field_name": "ok", "field_type": "text"},
                {"field_name": "bad", "field_type": "nope"},
            ],
        )
    assert schema.list_by_category(cars.id) == []


@pytest.mark.django_db
def test_bulk_create_allows_references_within_the_batch(cars):
    created = schema.bulk_create(
        cars.id,
        [
            {
                "field_name": "garage_spaces",
                "field_type": "number",
                "conditional_display": {"field_name": "has_garage", "operator": "equals", "value": True},
            },
            {"field_name": "has_garage", "field_type": "checkbox"},
        ],
    )
    assert [d.field_name for d in created] == ["garage_spaces", "has_garage"]


@pytest.mark.django_db
def test_effective_definitions_nearest_category_wins(vehicles, cars):
    parent_year = _create(vehicles, "year", field_label="Year", order_index=1)
    parent_condition = _create(vehicles, "condition", order_index=0)
    child_year = _create(cars, "year", field_label="Model year", order_index=3, is_searchable=True)
    child_vin = _create(cars, "vin", order_index=2)

    effective = schema.effective_definitions(cars)
    assert [d.id for d in effective] == [parent_condition.id, child_vin.id, child_year.id]
    assert parent_year.id not in {d.id for d in effective}

    assert [d.id for d in schema.effective_definitions(cars, searchable_only=True)] == [child_year.id]
    assert [d.id for d in schema.effective_definitions(vehicles)] == [parent_condition.id, parent_year.id]


@pytest.mark.django_db
def test_check_raises_write_errors_without_saving(cars):
    notes = _create(cars, "notes")

    with pytest.raises(errors.DuplicateFieldName):
        schema.check({"category_id": cars.id, "field_name": "notes", "field_type": "text"})
    with pytest.raises(errors.InvalidConditionalDisplay):
        schema.check({"conditional_display": {"field_name": "ghost", "operator": "equals", "value": 1}}, attribute_id=notes.id)

    checked = schema.check({"field_name": "remarks"}, attribute_id=notes.id)
    assert checked.field_name == "remarks"
    notes.refresh_from_db()
    assert notes.field_name == "notes"
    assert CategoryAttributeDefinition.objects.filter(category=cars).count() == 1
