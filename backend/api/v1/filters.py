import django_filters

from market.models import Listing, ListingStatus


class ListingFilter(django_filters.FilterSet):
    # Supports both price_min/price_max and price__gte/price__lte.
    price_min = django_filters.NumberFilter(field_name="price", lookup_expr="gte", min_value=0)
    price_max = django_filters.NumberFilter(field_name="price", lookup_expr="lte", min_value=0)
    price__gte = django_filters.NumberFilter(field_name="price", lookup_expr="gte", min_value=0)
    price__lte = django_filters.NumberFilter(field_name="price", lookup_expr="lte", min_value=0)
    status = django_filters.ChoiceFilter(choices=ListingStatus.choices)
    seller = django_filters.NumberFilter(field_name="seller_id")

    class Meta:
        model = Listing
        fields = ["status", "seller"]
