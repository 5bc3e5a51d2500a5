"""Route registration for user and organization endpoints."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ClusterViewSet, DistrictViewSet, SchoolViewSet, UserViewSet, health

router = DefaultRouter()
router.register("users", UserViewSet, basename="user")
router.register("districts", DistrictViewSet, basename="district")
router.register("clusters", ClusterViewSet, basename="cluster")
router.register("schools", SchoolViewSet, basename="school")

urlpatterns = [
    path("healthz/", health, name="health"),
    path("", include(router.urls)),
]
