# Generated manually for initial schema.
from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models

import accounts.models
import datarequests.models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="DataRequest",
            fields=[
                (
                    "id",
                    models.CharField(
                        default=accounts.models.new_id,
                        editable=False,
                        max_length=64,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("client_reference", models.UUIDField(blank=True, null=True, unique=True)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("voice_note", models.JSONField(blank=True, null=True)),
                ("created_by", models.CharField(max_length=64)),
                ("created_by_name", models.CharField(max_length=255)),
                ("created_by_role", models.CharField(max_length=32)),
                ("created_by_school_id", models.CharField(blank=True, max_length=64, null=True)),
                ("created_by_cluster_id", models.CharField(blank=True, max_length=64, null=True)),
                ("created_by_district_id", models.CharField(blank=True, max_length=64, null=True)),
                ("fields", models.JSONField(default=list)),
                (
                    "priority",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("urgent", "Urgent")],
                        default="medium",
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("active", "Active"), ("completed", "Completed")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("is_archived", models.BooleanField(default=False)),
                ("due_date", models.DateTimeField(default=datarequests.models.default_due_date)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-created_at", "id"]},
        ),
        migrations.CreateModel(
            name="RequestAssignee",
            fields=[
                (
                    "id",
                    models.CharField(
                        default=accounts.models.new_id,
                        editable=False,
                        max_length=64,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("user_id", models.CharField(max_length=64)),
                ("user_name", models.CharField(max_length=255)),
                ("user_role", models.CharField(max_length=32)),
                ("school_id", models.CharField(blank=True, max_length=64, null=True)),
                ("school_name", models.CharField(blank=True, max_length=255, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("completed", "Completed"), ("overdue", "Overdue")],
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("field_responses", models.JSONField(default=list)),
                ("delegated_by", models.CharField(blank=True, max_length=64, null=True)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "request",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="assignees",
                        to="datarequests.datarequest",
                    ),
                ),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.AddIndex(
            model_name="datarequest",
            index=models.Index(fields=["created_by"], name="datareq_created_by_idx"),
        ),
        migrations.AddIndex(
            model_name="datarequest",
            index=models.Index(fields=["is_archived"], name="datareq_archived_idx"),
        ),
        migrations.AddConstraint(
            model_name="requestassignee",
            constraint=models.UniqueConstraint(fields=("request", "user_id"), name="unique_request_assignee"),
        ),
    ]
