import logging

from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView

from api.health_checks import build_health_payload
from market.attributes import authoring, schema, values, visibility
from market.attributes.filters import compile_filters, filters_from_query
from market.models import Category, Listing, ListingStatus

from .filters import ListingFilter
from .permissions import IsOwnerOrReadOnly, IsStaffOrReadOnly
from .serializers import (
    AttributeBulkCreateSerializer,
    AttributeBulkUpsertSerializer,
    AttributeDefinitionWriteSerializer,
    AttributeReorderSerializer,
    AttributeValuesSerializer,
    CategoryAttributeDefinitionSerializer,
    CategorySerializer,
    ListingDetailSerializer,
    ListingListSerializer,
    ListingWriteSerializer,
    VisibilityRequestSerializer,
)

logger = logging.getLogger("classifieds.attributes")


def _truthy(raw) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes"}


class HealthView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        payload, ok = build_health_payload()
        return Response(payload, status=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE)


class CategoryViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Category.objects.all()
    serializer_class = CategorySerializer
    pagination_class = None

    def _definitions(self, request, category, *, searchable_only=False):
        if _truthy(request.query_params.get("effective")):
            return schema.effective_definitions(category, searchable_only=searchable_only)
        if searchable_only:
            return schema.list_searchable_by_category(category.id)
        return schema.list_by_category(category.id)

    @action(detail=True, methods=["get"], permission_classes=[AllowAny], url_path="attributes")
    def attributes(self, request, pk=None):
        category = self.get_object()
        defs = self._definitions(request, category)
        return Response(CategoryAttributeDefinitionSerializer(defs, many=True).data)

    @action(detail=True, methods=["get"], permission_classes=[AllowAny], url_path="attributes/searchable")
    def searchable_attributes(self, request, pk=None):
        category = self.get_object()
        defs = self._definitions(request, category, searchable_only=True)
        return Response(CategoryAttributeDefinitionSerializer(defs, many=True).data)

    @action(detail=True, methods=["post"], permission_classes=[AllowAny], url_path="attributes/visibility")
    def attribute_visibility(self, request, pk=None):
        category = self.get_object()
        serializer = VisibilityRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        defs = schema.effective_definitions(category)
        shown = visibility.visible(defs, serializer.validated_data.get("values") or {})
        return Response({"visible": [d.field_name for d in defs if d.field_name in shown]})


class AttributeDefinitionViewSet(viewsets.ViewSet):
    permission_classes = [IsStaffOrReadOnly]
    lookup_value_regex = r"\d+"

    def list(self, request):
        raw = request.query_params.get("category")
        if not raw:
            raise ValidationError({"detail": "category is required"})
        try:
            category_id = int(raw)
        except (TypeError, ValueError):
            raise ValidationError({"detail": "category must be an integer"})
        defs = schema.list_by_category(category_id)
        return Response(CategoryAttributeDefinitionSerializer(defs, many=True).data)

    def retrieve(self, request, pk=None):
        return Response(CategoryAttributeDefinitionSerializer(schema.get(pk)).data)

    def create(self, request):
        serializer = AttributeDefinitionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        definition = schema.create(serializer.validated_data)
        return Response(CategoryAttributeDefinitionSerializer(definition).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        serializer = AttributeDefinitionWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        definition = schema.update(pk, serializer.validated_data)
        return Response(CategoryAttributeDefinitionSerializer(definition).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        # Irreversible: every listing value stored for this attribute goes with it.
        values_deleted = schema.delete(pk)
        return Response({"values_deleted": values_deleted})

    @action(detail=False, methods=["post"])
    def reorder(self, request):
        serializer = AttributeReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        defs = schema.reorder(
            serializer.validated_data["attribute_ids"],
            category_id=serializer.validated_data.get("category_id"),
        )
        return Response(CategoryAttributeDefinitionSerializer(defs, many=True).data)

    @action(detail=False, methods=["post"])
    def bulk(self, request):
        serializer = AttributeBulkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        defs = schema.bulk_create(serializer.validated_data["category_id"], serializer.validated_data["attributes"])
        return Response(CategoryAttributeDefinitionSerializer(defs, many=True).data, status=status.HTTP_201_CREATED)


class ListingViewSet(viewsets.ModelViewSet):
    permission_classes = [IsAuthenticatedOrReadOnly, IsOwnerOrReadOnly]
    filterset_class = ListingFilter
    search_fields = ["title", "description"]
    ordering_fields = ["created_at", "price"]

    def get_queryset(self):
        qs = Listing.objects.select_related("category", "subcategory", "seller")

        user = self.request.user
        if user.is_authenticated:
            if not getattr(user, "is_staff", False):
                qs = qs.filter(Q(status=ListingStatus.PUBLISHED) | Q(seller=user))
        else:
            qs = qs.filter(status=ListingStatus.PUBLISHED)

        if getattr(self, "action", None) != "list":
            return qs

        qp = self.request.query_params
        category = qp.get("category")
        subcategory = qp.get("subcategory")
        for name, raw in (("category", category), ("subcategory", subcategory)):
            if raw and not str(raw).strip().isdigit():
                raise ValidationError({"detail": f"{name} must be an integer"})

        # Attribute filters: query params starting with attr_
        attr_filters = filters_from_query(qp)
        if category or subcategory:
            compiled = compile_filters(category or subcategory, attr_filters, subcategory=subcategory)
            qs = compiled.apply(qs.filter(id__in=compiled.candidates().values("id")))
        elif attr_filters:
            raise ValidationError({"detail": "attr_* filters require category to be set"})

        return qs

    def get_serializer_class(self):
        if self.action in {"create", "update", "partial_update"}:
            return ListingWriteSerializer
        if self.action == "retrieve":
            return ListingDetailSerializer
        return ListingListSerializer

    def perform_create(self, serializer):
        serializer.save(seller=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = ListingWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        return Response(
            ListingDetailSerializer(serializer.instance, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = ListingWriteSerializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)
        instance.refresh_from_db()
        return Response(ListingDetailSerializer(instance, context={"request": request}).data)

    def partial_update(self, request, *args, **kwargs):
        kwargs["partial"] = True
        return self.update(request, *args, **kwargs)

    def perform_destroy(self, instance):
        values_deleted = values.delete_all_for_listing(instance.id)
        logger.info("listing deleted", extra={"listing_id": instance.id, "values_deleted": values_deleted})
        instance.delete()

    @action(detail=True, methods=["get", "put", "patch"], url_path="attributes")
    def attributes(self, request, pk=None):
        listing = self.get_object()

        if request.method in {"PUT", "PATCH"}:
            serializer = AttributeValuesSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            # PUT replaces the whole value set; PATCH merges into it.
            authoring.submit(listing, serializer.validated_data["attributes"], replace=request.method == "PUT")

        stored = values.get_by_listing(listing.id)
        return Response(
            {
                "attributes": [s.as_dict() for s in stored],
                "visible": sorted(authoring.visible_for(listing, {s.field_name: s.value for s in stored})),
            }
        )

    @action(detail=True, methods=["post"], url_path="attributes/bulk")
    def bulk_attributes(self, request, pk=None):
        listing = self.get_object()
        serializer = AttributeBulkUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = values.bulk_upsert(listing.id, serializer.validated_data["values"])
        return Response(
            {
                "saved": [s.as_dict() for s in result.saved],
                "cleared": result.cleared,
                "errors": [err.as_dict() for err in result.errors],
            },
            status=status.HTTP_200_OK if result.ok else status.HTTP_207_MULTI_STATUS,
        )

    @action(
        detail=True,
        methods=["put", "delete"],
        url_path=r"attributes/(?P<attribute_id>\d+)",
    )
    def attribute_value(self, request, pk=None, attribute_id=None):
        listing = self.get_object()

        if request.method == "DELETE":
            values.delete(listing.id, int(attribute_id))
            return Response(status=status.HTTP_204_NO_CONTENT)

        if not isinstance(request.data, dict) or "value" not in request.data:
            raise ValidationError({"detail": "value is required"})
        stored = values.upsert(listing.id, int(attribute_id), request.data.get("value"))
        if stored is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(stored.as_dict())
