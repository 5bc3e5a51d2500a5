"""Route registration for data request endpoints."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import DataRequestViewSet, RequestAssigneeViewSet

router = SimpleRouter()
router.register("requests", DataRequestViewSet, basename="data-request")
router.register("assignees", RequestAssigneeViewSet, basename="assignee")

urlpatterns = [
    path("", include(router.urls)),
]
