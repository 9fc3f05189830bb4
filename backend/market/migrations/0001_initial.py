from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("name", models.CharField(max_length=120)),
                ("slug", models.SlugField(max_length=140, unique=True)),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="children",
                        to="market.category",
                    ),
                ),
            ],
            options={
                "ordering": ["slug"],
                "indexes": [models.Index(fields=["parent", "slug"], name="market_cat_parent_slug_idx")],
            },
        ),
        migrations.CreateModel(
            name="Listing",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=140)),
                ("description", models.TextField(blank=True)),
                ("price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("currency", models.CharField(default="USD", max_length=8)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published"), ("archived", "Archived")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="listings",
                        to="market.category",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="listings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "subcategory",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sub_listings",
                        to="market.category",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="market_lst_status_created_idx"),
                    models.Index(fields=["category", "status", "created_at"], name="market_lst_cat_status_idx"),
                    models.Index(fields=["subcategory", "status", "created_at"], name="market_lst_subcat_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CategoryAttributeDefinition",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("field_name", models.CharField(max_length=100)),
                ("field_label", models.CharField(max_length=100)),
                (
                    "field_type",
                    models.CharField(
                        choices=[
                            ("text", "Text"),
                            ("number", "Number"),
                            ("select", "Select"),
                            ("multiselect", "Multi-select"),
                            ("checkbox", "Checkbox"),
                            ("radio", "Radio"),
                            ("date", "Date"),
                            ("textarea", "Textarea"),
                            ("tel", "Phone"),
                            ("email", "Email"),
                            ("url", "URL"),
                            ("range", "Range"),
                        ],
                        max_length=16,
                    ),
                ),
                ("field_options", models.JSONField(blank=True, default=list)),
                ("placeholder", models.CharField(blank=True, max_length=255)),
                ("help_text", models.TextField(blank=True)),
                ("validation_rules", models.JSONField(blank=True, default=dict)),
                ("order_index", models.IntegerField(default=0)),
                ("conditional_display", models.JSONField(blank=True, null=True)),
                ("is_searchable", models.BooleanField(default=False)),
                ("is_required", models.BooleanField(default=False)),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attribute_definitions",
                        to="market.category",
                    ),
                ),
            ],
            options={
                "ordering": ["order_index", "id"],
                "indexes": [
                    models.Index(fields=["category", "order_index"], name="market_attrdef_cat_order_idx"),
                    models.Index(fields=["category", "is_searchable"], name="market_attrdef_cat_search_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("category", "field_name"), name="uq_cat_attrdef_category_field"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ListingAttributeValue",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("string", "String"),
                            ("number", "Number"),
                            ("boolean", "Boolean"),
                            ("array", "String array"),
                        ],
                        max_length=8,
                    ),
                ),
                ("payload", models.TextField()),
                (
                    "definition",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="values",
                        to="market.categoryattributedefinition",
                    ),
                ),
                (
                    "listing",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attribute_values",
                        to="market.listing",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["definition", "kind"], name="market_attrval_def_kind_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("listing", "definition"), name="uq_listing_attrvalue_listing_def"),
                ],
            },
        ),
    ]
