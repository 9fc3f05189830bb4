from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count

from market.attributes.audit import category_counts, dangling_references
from market.models import Category, CategoryAttributeDefinition, ListingAttributeValue


class Command(BaseCommand):
    help = "Audit category attribute definitions and stored values."

    def add_arguments(self, parser):
        parser.add_argument("--top", type=int, default=25, help="Show up to N categories with the most definitions")
        parser.add_argument(
            "--fail-on-dangling",
            action="store_true",
            help="Exit with an error when a conditional display rule points at a missing field",
        )

    def handle(self, *args, **options):
        top = int(options.get("top") or 0)

        self.stdout.write(f"categories_total={Category.objects.count()}")
        self.stdout.write(f"attribute_defs_total={CategoryAttributeDefinition.objects.count()}")
        self.stdout.write(f"searchable_defs_total={CategoryAttributeDefinition.objects.filter(is_searchable=True).count()}")
        self.stdout.write(f"attribute_values_total={ListingAttributeValue.objects.count()}")

        by_kind = dict(
            ListingAttributeValue.objects.values_list("kind").annotate(n=Count("id")).order_by("kind")
        )
        self.stdout.write(f"values_by_kind={by_kind}")

        if top > 0:
            self.stdout.write("top_categories_by_attr_defs=")
            rows = sorted(category_counts(), key=lambda row: (-row[1], row[0].slug))
            for category, total, searchable in rows[:top]:
                self.stdout.write(f"- {category.slug}: {total} (searchable={searchable})")

        dangling = dangling_references()
        self.stdout.write(f"dangling_conditions={len(dangling)}")
        for ref in dangling:
            self.stdout.write(
                f"- category={ref.category_id} attribute={ref.attribute_id} {ref.field_name} -> {ref.depends_on}"
            )

        if dangling and options.get("fail_on_dangling"):
            raise CommandError(f"{len(dangling)} dangling conditional display rule(s)")
