from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import AttributeDefinitionViewSet, CategoryViewSet, HealthView, ListingViewSet

router = DefaultRouter()
router.register(r"categories", CategoryViewSet, basename="category")
router.register(r"attribute-definitions", AttributeDefinitionViewSet, basename="attribute-definition")
router.register(r"listings", ListingViewSet, basename="listing")

urlpatterns = [
    path("health/", HealthView.as_view(), name="v1-health"),
    path("auth/token/", TokenObtainPairView.as_view(), name="v1-token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="v1-token-refresh"),
    path("", include(router.urls)),
]
