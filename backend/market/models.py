from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.core.exceptions import ValidationError
from django.utils.text import slugify


class TimestampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Category(TimestampedModel):
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=140, unique=True)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )

    class Meta:
        indexes = [models.Index(fields=["parent", "slug"], name="market_cat_parent_slug_idx")]
        ordering = ["slug"]

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    def ancestor_ids_including_self(self) -> list[int]:
        """Return [self.id, parent.id, grandparent.id, ...], nearest first."""
        ids: list[int] = []
        seen: set[int] = set()
        cur: Category | None = self
        while cur is not None and cur.pk is not None:
            if cur.pk in seen:
                break
            seen.add(cur.pk)
            ids.append(cur.pk)
            if cur.parent_id is None:
                break
            cur = Category.objects.filter(pk=cur.parent_id).first()
        return ids

    def descendant_ids_including_self(self) -> list[int]:
        ids: list[int] = [self.pk]
        frontier: list[int] = [self.pk]
        seen: set[int] = {self.pk}

        # Depth is expected to be small; this keeps queries bounded.
        while frontier:
            child_ids = list(Category.objects.filter(parent_id__in=frontier).values_list("id", flat=True))
            frontier = []
            for cid in child_ids:
                if cid in seen:
                    continue
                seen.add(cid)
                ids.append(cid)
                frontier.append(cid)
        return ids

    def __str__(self) -> str:
        return self.name


class ListingStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"
    ARCHIVED = "archived", "Archived"


class Listing(TimestampedModel):
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="listings")

    title = models.CharField(max_length=140)
    description = models.TextField(blank=True)

    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=8, default="USD")

    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="listings")
    subcategory = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name="sub_listings",
        null=True,
        blank=True,
    )

    status = models.CharField(max_length=16, choices=ListingStatus.choices, default=ListingStatus.DRAFT)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="market_lst_status_created_idx"),
            models.Index(fields=["category", "status", "created_at"], name="market_lst_cat_status_idx"),
            models.Index(fields=["subcategory", "status", "created_at"], name="market_lst_subcat_status_idx"),
        ]
        ordering = ["-created_at"]

    @property
    def attribute_category(self) -> Category:
        """The most specific category whose definitions apply to this listing."""
        return self.subcategory or self.category

    def clean(self):
        if self.price is not None and self.price < Decimal("0"):
            raise ValidationError({"price": "Price cannot be negative"})
        if self.subcategory_id and self.subcategory.parent_id != self.category_id:
            raise ValidationError({"subcategory": "Subcategory must belong to the selected category"})

    def __str__(self) -> str:
        return self.title


class FieldType(models.TextChoices):
    TEXT = "text", "Text"
    NUMBER = "number", "Number"
    SELECT = "select", "Select"
    MULTISELECT = "multiselect", "Multi-select"
    CHECKBOX = "checkbox", "Checkbox"
    RADIO = "radio", "Radio"
    DATE = "date", "Date"
    TEXTAREA = "textarea", "Textarea"
    TEL = "tel", "Phone"
    EMAIL = "email", "Email"
    URL = "url", "URL"
    RANGE = "range", "Range"


class CategoryAttributeDefinition(TimestampedModel):
    category = models.ForeignKey(Category, on_delete=models.CASCADE, related_name="attribute_definitions")

    field_name = models.CharField(max_length=100)
    field_label = models.CharField(max_length=100)
    field_type = models.CharField(max_length=16, choices=FieldType.choices)
    field_options = models.JSONField(default=list, blank=True)
    placeholder = models.CharField(max_length=255, blank=True)
    help_text = models.TextField(blank=True)
    validation_rules = models.JSONField(default=dict, blank=True)
    order_index = models.IntegerField(default=0)
    # {"field_name": <sibling>, "operator": "equals"|"not_equals"|"contains", "value": <any>}
    conditional_display = models.JSONField(null=True, blank=True)
    is_searchable = models.BooleanField(default=False)
    is_required = models.BooleanField(default=False)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["category", "field_name"], name="uq_cat_attrdef_category_field"),
        ]
        indexes = [
            models.Index(fields=["category", "order_index"], name="market_attrdef_cat_order_idx"),
            models.Index(fields=["category", "is_searchable"], name="market_attrdef_cat_search_idx"),
        ]
        ordering = ["order_index", "id"]

    def __str__(self) -> str:
        return f"{self.field_name} ({self.category_id})"


class ValueKind(models.TextChoices):
    STRING = "string", "String"
    NUMBER = "number", "Number"
    BOOLEAN = "boolean", "Boolean"
    ARRAY = "array", "String array"


class ListingAttributeValue(TimestampedModel):
    listing = models.ForeignKey(Listing, on_delete=models.CASCADE, related_name="attribute_values")
    definition = models.ForeignKey(
        CategoryAttributeDefinition,
        on_delete=models.CASCADE,
        related_name="values",
    )

    kind = models.CharField(max_length=8, choices=ValueKind.choices)
    # Canonical JSON text of the value; see market.attributes.codec.
    payload = models.TextField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["listing", "definition"], name="uq_listing_attrvalue_listing_def"),
        ]
        indexes = [
            models.Index(fields=["definition", "kind"], name="market_attrval_def_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"ListingAttributeValue({self.listing_id}, {self.definition_id})"
