from django import forms
from django.contrib import admin, messages
from django.core.management import call_command
from django.http import HttpResponseNotAllowed
from django.shortcuts import redirect
from django.urls import path

from .attributes import authoring, schema
from .attributes.errors import AttributeCoreError
from .models import Category, CategoryAttributeDefinition, Listing, ListingAttributeValue


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "slug", "parent")
    list_filter = ("parent",)
    search_fields = ("name", "slug")


class ListingAttributeValueInline(admin.TabularInline):
    # Values are written through the attribute core only; the admin can inspect and remove them.
    model = ListingAttributeValue
    extra = 0
    fields = ("definition", "kind", "payload", "updated_at")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "seller", "status", "category", "subcategory", "created_at")
    list_filter = ("status", "category")
    search_fields = ("title", "description")
    inlines = [ListingAttributeValueInline]

    actions = ["publish", "archive", "prune_foreign_attributes"]

    @admin.action(description="Publish selected listings")
    def publish(self, request, queryset):
        queryset.update(status="published")

    @admin.action(description="Archive selected listings")
    def archive(self, request, queryset):
        queryset.update(status="archived")

    @admin.action(description="Remove attribute values outside the listing's category")
    def prune_foreign_attributes(self, request, queryset):
        removed = sum(authoring.prune_outside_category(listing) for listing in queryset.select_related("category", "subcategory"))
        self.message_user(request, f"Removed {removed} attribute value(s).", level=messages.SUCCESS)


class CategoryAttributeDefinitionForm(forms.ModelForm):
    """Runs the attribute schema checks so rule violations show up as form errors."""

    class Meta:
        model = CategoryAttributeDefinition
        fields = "__all__"

    def schema_data(self) -> dict:
        return {name: self.cleaned_data[name] for name in schema.UPDATABLE_FIELDS if name in self.cleaned_data}

    def clean(self):
        cleaned = super().clean()
        if self.errors:
            return cleaned

        data = self.schema_data()
        try:
            if self.instance.pk is None:
                category = cleaned.get("category")
                schema.check({**data, "category_id": getattr(category, "pk", None)})
            else:
                schema.check(data, attribute_id=self.instance.pk)
        except AttributeCoreError as exc:
            raise forms.ValidationError(exc.message, code=exc.code)
        return cleaned


@admin.register(CategoryAttributeDefinition)
class CategoryAttributeDefinitionAdmin(admin.ModelAdmin):
    form = CategoryAttributeDefinitionForm
    list_display = (
        "id",
        "category",
        "field_name",
        "field_type",
        "is_required",
        "is_searchable",
        "order_index",
    )
    list_filter = ("field_type", "is_required", "is_searchable", "category")
    search_fields = ("field_name", "field_label")

    def get_urls(self):
        urls = super().get_urls()
        custom_urls = [
            path(
                "seed/",
                self.admin_site.admin_view(self.seed_definitions_view),
                name="market_categoryattributedefinition_seed",
            ),
        ]
        return custom_urls + urls

    def seed_definitions_view(self, request):
        if request.method != "POST":
            return HttpResponseNotAllowed(["POST"])
        if not self.has_add_permission(request):
            self.message_user(request, "You do not have permission to seed attributes.", level=messages.ERROR)
            return redirect("..")

        call_command("seed_category_attributes")
        self.message_user(request, "Seeded category attributes.", level=messages.SUCCESS)
        return redirect("..")

    def get_readonly_fields(self, request, obj=None):
        if obj is not None:
            return ("category",)
        return ()

    def save_model(self, request, obj, form, change):
        data = form.schema_data()
        if change:
            definition = schema.update(obj.pk, data)
        else:
            definition = schema.create({**data, "category_id": obj.category_id})
        obj.pk = definition.pk
        obj.refresh_from_db()

    def delete_model(self, request, obj):
        deleted = schema.delete(obj.pk)
        self.message_user(request, f"Deleted {deleted} stored value(s) with this attribute.", level=messages.WARNING)

    def delete_queryset(self, request, queryset):
        deleted = sum(schema.delete(pk) for pk in list(queryset.values_list("pk", flat=True)))
        self.message_user(request, f"Deleted {deleted} stored value(s) with these attributes.", level=messages.WARNING)


@admin.register(ListingAttributeValue)
class ListingAttributeValueAdmin(admin.ModelAdmin):
    list_display = ("id", "listing", "definition", "kind", "payload")
    list_filter = ("kind", "definition__category")
    search_fields = ("definition__field_name", "payload")

    # Values are validated against their definition on write; the admin only inspects and deletes.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
