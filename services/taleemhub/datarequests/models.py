"""Database models for data requests and their assignees."""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from django.conf import settings
from django.db import models
from django.utils import timezone

from accounts.models import new_id


def default_due_date():
    return timezone.now() + timedelta(days=settings.TALEEMHUB_DEFAULT_DUE_DAYS)


class DataRequest(models.Model):
    """A data collection request fanned out to a set of assignees."""

    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"

    STATUS_CHOICES = [
        (DRAFT, "Draft"),
        (ACTIVE, "Active"),
        (COMPLETED, "Completed"),
    ]

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    PRIORITY_CHOICES = [
        (LOW, "Low"),
        (MEDIUM, "Medium"),
        (HIGH, "High"),
        (URGENT, "Urgent"),
    ]

    TEXT = "text"
    NUMBER = "number"
    FILE = "file"
    PHOTO = "photo"
    VOICE_NOTE = "voice_note"

    FIELD_TYPES = [
        (TEXT, "Text"),
        (NUMBER, "Number"),
        (FILE, "File"),
        (PHOTO, "Photo"),
        (VOICE_NOTE, "Voice note"),
    ]
    ATTACHMENT_TYPES = {FILE, PHOTO, VOICE_NOTE}

    id = models.CharField(max_length=64, primary_key=True, default=new_id, editable=False)
    client_reference = models.UUIDField(null=True, blank=True, unique=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    voice_note = models.JSONField(null=True, blank=True)
    created_by = models.CharField(max_length=64)
    created_by_name = models.CharField(max_length=255)
    created_by_role = models.CharField(max_length=32)
    created_by_school_id = models.CharField(max_length=64, null=True, blank=True)
    created_by_cluster_id = models.CharField(max_length=64, null=True, blank=True)
    created_by_district_id = models.CharField(max_length=64, null=True, blank=True)
    fields = models.JSONField(default=list)
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default=MEDIUM)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=ACTIVE)
    is_archived = models.BooleanField(default=False)
    due_date = models.DateTimeField(default=default_due_date)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]
        indexes = [
            models.Index(fields=["created_by"], name="datareq_created_by_idx"),
            models.Index(fields=["is_archived"], name="datareq_archived_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.status})"

    def response_template(self) -> List[Dict[str, Any]]:
        """Empty responses for every field, in field order."""

        return [
            {
                "id": field["id"],
                "name": field["name"],
                "type": field["type"],
                "required": bool(field.get("required", False)),
                "value": None,
                "file_url": None,
                "file_name": None,
            }
            for field in self.fields
        ]

    def has_responses(self) -> bool:
        return self.assignees.filter(status=RequestAssignee.COMPLETED).exists()

    def refresh_completion(self) -> None:
        """Mark the request completed once every assignee has submitted."""

        statuses = list(self.assignees.values_list("status", flat=True))
        if self.status == self.DRAFT or not statuses:
            return
        all_done = all(value == RequestAssignee.COMPLETED for value in statuses)
        target = self.COMPLETED if all_done else self.ACTIVE
        if target != self.status:
            self.status = target
            self.save(update_fields=["status", "updated_at"])


class RequestAssignee(models.Model):
    """One assignee's copy of a request's fields."""

    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (OVERDUE, "Overdue"),
    ]

    id = models.CharField(max_length=64, primary_key=True, default=new_id, editable=False)
    request = models.ForeignKey(DataRequest, related_name="assignees", on_delete=models.CASCADE)
    user_id = models.CharField(max_length=64)
    user_name = models.CharField(max_length=255)
    user_role = models.CharField(max_length=32)
    school_id = models.CharField(max_length=64, null=True, blank=True)
    school_name = models.CharField(max_length=255, null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING)
    field_responses = models.JSONField(default=list)
    delegated_by = models.CharField(max_length=64, null=True, blank=True)
    submitted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["request", "user_id"], name="unique_request_assignee"),
        ]

    def __str__(self) -> str:
        return f"{self.user_name} ({self.status})"

    def mark_completed(self, responses: List[Dict[str, Any]]) -> None:
        self.field_responses = responses
        self.status = self.COMPLETED
        self.submitted_at = timezone.now()
        self.save(update_fields=["field_responses", "status", "submitted_at"])
