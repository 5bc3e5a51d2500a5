"""Serializers for data requests and assignee responses."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List

from rest_framework import serializers

from .models import DataRequest, RequestAssignee


class FieldDefinitionSerializer(serializers.Serializer):
    id = serializers.CharField(max_length=64, required=False)
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=DataRequest.FIELD_TYPES)
    required = serializers.BooleanField(default=False)


class VoiceNoteSerializer(serializers.Serializer):
    url = serializers.CharField(max_length=2048)
    file_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    duration_seconds = serializers.IntegerField(required=False, min_value=0)


def normalize_fields(fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Give every field a stable id and reject duplicate ids."""

    normalized = []
    seen = set()
    for field in fields:
        field_id = field.get("id") or uuid.uuid4().hex[:12]
        if field_id in seen:
            raise serializers.ValidationError({"fields": f"Duplicate field id '{field_id}'."})
        seen.add(field_id)
        normalized.append(
            {
                "id": field_id,
                "name": field["name"],
                "type": field["type"],
                "required": bool(field.get("required", False)),
            }
        )
    return normalized


class DataRequestCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    voice_note = VoiceNoteSerializer(required=False, allow_null=True, default=None)
    fields = FieldDefinitionSerializer(many=True, allow_empty=False)
    assignee_ids = serializers.ListField(
        child=serializers.CharField(max_length=64), allow_empty=False
    )
    due_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    priority = serializers.ChoiceField(choices=DataRequest.PRIORITY_CHOICES, default=DataRequest.MEDIUM)
    status = serializers.ChoiceField(
        choices=[DataRequest.DRAFT, DataRequest.ACTIVE], default=DataRequest.ACTIVE
    )
    client_reference = serializers.UUIDField(required=False, allow_null=True, default=None)

    def validate_fields(self, value):
        return normalize_fields(value)


class DataRequestUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    voice_note = VoiceNoteSerializer(required=False, allow_null=True)
    priority = serializers.ChoiceField(choices=DataRequest.PRIORITY_CHOICES, required=False)
    due_date = serializers.DateTimeField(required=False)
    is_archived = serializers.BooleanField(required=False)
    fields = FieldDefinitionSerializer(many=True, allow_empty=False, required=False)

    def validate_fields(self, value):
        return normalize_fields(value)


class ResponseSubmissionSerializer(serializers.Serializer):
    """Field values keyed by field id.

    Attachment fields take ``{"url": ..., "file_name": ...}`` as their value.
    """

    values = serializers.DictField(child=serializers.JSONField(allow_null=True))


class DelegationSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)


class RequestAssigneeSerializer(serializers.ModelSerializer):
    fields = serializers.JSONField(source="field_responses", read_only=True)

    class Meta:
        model = RequestAssignee
        fields = [
            "id",
            "request",
            "user_id",
            "user_name",
            "user_role",
            "school_id",
            "school_name",
            "status",
            "fields",
            "delegated_by",
            "submitted_at",
            "created_at",
        ]
        read_only_fields = fields


class DataRequestSerializer(serializers.ModelSerializer):
    assignees = RequestAssigneeSerializer(many=True, read_only=True)
    progress = serializers.SerializerMethodField()

    class Meta:
        model = DataRequest
        fields = [
            "id",
            "client_reference",
            "title",
            "description",
            "voice_note",
            "created_by",
            "created_by_name",
            "created_by_role",
            "created_by_school_id",
            "created_by_cluster_id",
            "created_by_district_id",
            "fields",
            "priority",
            "status",
            "is_archived",
            "due_date",
            "created_at",
            "updated_at",
            "assignees",
            "progress",
        ]
        read_only_fields = fields

    def get_progress(self, obj: DataRequest) -> Dict[str, int]:
        assignees = list(obj.assignees.all())
        completed = sum(1 for entry in assignees if entry.status == RequestAssignee.COMPLETED)
        return {"completed": completed, "total": len(assignees)}
