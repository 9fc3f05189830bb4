from django.db import transaction
from rest_framework import serializers

from market.attributes import authoring, values
from market.models import Category, CategoryAttributeDefinition, Listing


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ["id", "name", "slug", "parent"]


class CategoryAttributeDefinitionSerializer(serializers.ModelSerializer):
    category_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = CategoryAttributeDefinition
        fields = [
            "id",
            "category_id",
            "field_name",
            "field_label",
            "field_type",
            "field_options",
            "placeholder",
            "help_text",
            "validation_rules",
            "order_index",
            "conditional_display",
            "is_searchable",
            "is_required",
        ]


class AttributeDefinitionWriteSerializer(serializers.Serializer):
    """Transport-level shape only; the attribute schema store owns the rules."""

    category_id = serializers.IntegerField(required=False)
    field_name = serializers.CharField(max_length=100, required=False)
    field_label = serializers.CharField(max_length=100, required=False, allow_blank=True)
    # Left as plain text so unsupported types surface as invalid_field_type.
    field_type = serializers.CharField(max_length=16, required=False)
    field_options = serializers.JSONField(required=False)
    placeholder = serializers.CharField(max_length=255, required=False, allow_blank=True)
    help_text = serializers.CharField(required=False, allow_blank=True)
    validation_rules = serializers.JSONField(required=False)
    order_index = serializers.IntegerField(required=False)
    conditional_display = serializers.JSONField(required=False, allow_null=True)
    is_searchable = serializers.BooleanField(required=False)
    is_required = serializers.BooleanField(required=False)


class AttributeReorderSerializer(serializers.Serializer):
    attribute_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    category_id = serializers.IntegerField(required=False)


class AttributeBulkCreateSerializer(serializers.Serializer):
    category_id = serializers.IntegerField()
    attributes = serializers.ListField(child=serializers.DictField(), allow_empty=False)


class VisibilityRequestSerializer(serializers.Serializer):
    values = serializers.DictField(required=False, default=dict)


class AttributeValuesSerializer(serializers.Serializer):
    attributes = serializers.DictField()


class AttributeValueEntrySerializer(serializers.Serializer):
    attribute_id = serializers.IntegerField()
    value = serializers.JSONField(allow_null=True)


class AttributeBulkUpsertSerializer(serializers.Serializer):
    values = AttributeValueEntrySerializer(many=True)


class ListingListSerializer(serializers.ModelSerializer):
    seller_id = serializers.IntegerField(source="seller.id", read_only=True)
    seller_username = serializers.CharField(source="seller.username", read_only=True)
    category = CategorySerializer(read_only=True)
    subcategory = CategorySerializer(read_only=True)

    class Meta:
        model = Listing
        fields = [
            "id",
            "title",
            "seller_id",
            "seller_username",
            "price",
            "currency",
            "status",
            "category",
            "subcategory",
            "created_at",
        ]


class ListingDetailSerializer(ListingListSerializer):
    attributes = serializers.SerializerMethodField()

    def get_attributes(self, obj):
        return [stored.as_dict() for stored in values.get_by_listing(obj.id)]

    class Meta(ListingListSerializer.Meta):
        fields = ListingListSerializer.Meta.fields + ["description", "attributes"]


class ListingWriteSerializer(serializers.ModelSerializer):
    attributes = serializers.DictField(required=False, write_only=True)

    def validate(self, attrs):
        category = attrs.get("category") or getattr(self.instance, "category", None)
        subcategory = attrs.get("subcategory", getattr(self.instance, "subcategory", None))

        if subcategory and category and subcategory.parent_id != category.id:
            raise serializers.ValidationError({"subcategory": "Subcategory must belong to the selected category"})

        price = attrs.get("price")
        if price is not None and price < 0:
            raise serializers.ValidationError({"price": "Price cannot be negative"})

        return attrs

    def create(self, validated_data):
        submitted = validated_data.pop("attributes", None) or {}
        with transaction.atomic():
            listing = super().create(validated_data)
            authoring.submit(listing, submitted)
        return listing

    def update(self, instance, validated_data):
        submitted = validated_data.pop("attributes", None)
        moved = any(
            key in validated_data and validated_data[key] != getattr(instance, key)
            for key in ("category", "subcategory")
        )
        with transaction.atomic():
            listing = super().update(instance, validated_data)
            if moved:
                authoring.prune_outside_category(listing)
            if submitted is not None:
                authoring.submit(listing, submitted)
        return listing

    class Meta:
        model = Listing
        fields = [
            "id",
            "title",
            "description",
            "price",
            "currency",
            "status",
            "category",
            "subcategory",
            "attributes",
        ]
        read_only_fields = ["id"]
