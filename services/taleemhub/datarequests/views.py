"""API views for data requests and assignee responses."""
from __future__ import annotations

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response

from . import services
from .models import DataRequest, RequestAssignee
from .serializers import (
    DataRequestCreateSerializer,
    DataRequestSerializer,
    DataRequestUpdateSerializer,
    DelegationSerializer,
    RequestAssigneeSerializer,
    ResponseSubmissionSerializer,
)


class DataRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = DataRequest.objects.prefetch_related("assignees").all()
    serializer_class = DataRequestSerializer

    def list(self, request: Request, *args, **kwargs):  # type: ignore[override]
        visible = services.list_requests_for(request.user)
        serializer = self.get_serializer(visible, many=True)
        return Response(serializer.data)

    def retrieve(self, request: Request, *args, **kwargs):  # type: ignore[override]
        data_request = self.get_object()
        services.ensure_visible(request.user, data_request)
        return Response(self.get_serializer(data_request).data)

    def create(self, request: Request, *args, **kwargs):  # type: ignore[override]
        payload_serializer = DataRequestCreateSerializer(data=request.data)
        payload_serializer.is_valid(raise_exception=True)
        data_request, created = services.create_request(request.user, **payload_serializer.validated_data)
        serializer = self.get_serializer(data_request)
        status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(serializer.data, status=status_code)

    def partial_update(self, request: Request, *args, **kwargs):  # type: ignore[override]
        data_request = self.get_object()
        payload_serializer = DataRequestUpdateSerializer(data=request.data, partial=True)
        payload_serializer.is_valid(raise_exception=True)
        data_request = services.update_request(
            data_request, request.user, payload_serializer.validated_data
        )
        return Response(self.get_serializer(data_request).data)

    def destroy(self, request: Request, *args, **kwargs):  # type: ignore[override]
        services.delete_request(self.get_object(), request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="assignees")
    def delegate(self, request: Request, *args, **kwargs):  # type: ignore[override]
        """Add a subordinate of the caller as a further assignee."""

        data_request = self.get_object()
        payload_serializer = DelegationSerializer(data=request.data)
        payload_serializer.is_valid(raise_exception=True)
        assignee = services.delegate_request(
            data_request, request.user, payload_serializer.validated_data["user_id"]
        )
        return Response(RequestAssigneeSerializer(assignee).data, status=status.HTTP_201_CREATED)


class RequestAssigneeViewSet(
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = RequestAssignee.objects.select_related("request").all()
    serializer_class = RequestAssigneeSerializer

    def retrieve(self, request: Request, *args, **kwargs):  # type: ignore[override]
        assignee = self.get_object()
        services.ensure_visible(request.user, assignee.request)
        return Response(self.get_serializer(assignee).data)

    def partial_update(self, request: Request, *args, **kwargs):  # type: ignore[override]
        assignee = self.get_object()
        payload_serializer = ResponseSubmissionSerializer(data=request.data)
        payload_serializer.is_valid(raise_exception=True)
        assignee = services.submit_response(
            assignee, request.user, payload_serializer.validated_data["values"]
        )
        return Response(self.get_serializer(assignee).data)
