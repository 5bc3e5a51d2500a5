"""API views for users and organizational units."""
from __future__ import annotations

from rest_framework import viewsets
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from datarequests import services as request_services

from . import hierarchy
from .directory import eligible_users
from .models import Cluster, District, School, User
from .serializers import ClusterSerializer, DistrictSerializer, SchoolSerializer, UserSerializer


class DistrictViewSet(viewsets.ModelViewSet):
    queryset = District.objects.all()
    serializer_class = DistrictSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "code"]
    ordering = ["name"]


class ClusterViewSet(viewsets.ModelViewSet):
    queryset = Cluster.objects.select_related("district").all()
    serializer_class = ClusterSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "code"]
    ordering = ["name"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        district_id = self.request.query_params.get("district_id")
        if district_id:
            queryset = queryset.filter(district_id=district_id)
        return queryset


class SchoolViewSet(viewsets.ModelViewSet):
    queryset = School.objects.select_related("cluster", "district").all()
    serializer_class = SchoolSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "code"]
    ordering = ["name"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        cluster_id = self.request.query_params.get("cluster_id")
        district_id = self.request.query_params.get("district_id")
        if cluster_id:
            queryset = queryset.filter(cluster_id=cluster_id)
        if district_id:
            queryset = queryset.filter(district_id=district_id)
        return queryset


class UserViewSet(viewsets.ModelViewSet):
    queryset = User.objects.all()
    serializer_class = UserSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "phone_number", "school_name"]
    ordering_fields = ["name", "created_at"]
    ordering = ["name"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        role = self.request.query_params.get("role")
        if role:
            queryset = queryset.filter(role=role)
        return queryset

    def _ensure_admin(self) -> None:
        if not hierarchy.can_manage_users(self.request.user.role):
            raise PermissionDenied("DEO or DDEO role required to manage users.")

    def create(self, request, *args, **kwargs):  # type: ignore[override]
        self._ensure_admin()
        return super().create(request, *args, **kwargs)

    def update(self, request, *args, **kwargs):  # type: ignore[override]
        target = self.get_object()
        if target.id == request.user.id:
            protected = sorted(hierarchy.PRIVILEGED_USER_FIELDS.intersection(request.data))
            if protected:
                raise PermissionDenied(f"You cannot change your own {', '.join(protected)}.")
        else:
            self._ensure_admin()
        return super().update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):  # type: ignore[override]
        target = self.get_object()
        self._ensure_admin()
        if target.id == request.user.id:
            raise PermissionDenied("You cannot remove your own account.")
        return super().destroy(request, *args, **kwargs)

    @action(detail=True, methods=["get"], url_path="eligible-assignees")
    def eligible_assignees(self, request, *args, **kwargs):  # type: ignore[override]
        """Users this user may assign or delegate work to."""

        requester = self.get_object()
        if requester.id != request.user.id:
            raise PermissionDenied("Eligible assignees can only be listed for yourself.")
        exclude_ids = []
        request_id = request.query_params.get("request_id")
        if request_id:
            data_request = request_services.get_request(request_id)
            request_services.ensure_visible(requester, data_request)
            exclude_ids = [entry.user_id for entry in data_request.assignees.all()]
        serializer = self.get_serializer(eligible_users(requester, exclude_ids), many=True)
        return Response(serializer.data)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def health(request):  # type: ignore[override]
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
