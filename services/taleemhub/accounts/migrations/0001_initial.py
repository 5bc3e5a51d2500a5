# Generated manually for initial schema.
from __future__ import annotations

import django.db.models.deletion
from django.db import migrations, models

import accounts.models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="District",
            fields=[
                ("id", models.CharField(default=accounts.models.new_id, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(max_length=64, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["name", "id"]},
        ),
        migrations.CreateModel(
            name="Cluster",
            fields=[
                ("id", models.CharField(default=accounts.models.new_id, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(max_length=64, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "district",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="clusters",
                        to="accounts.district",
                    ),
                ),
            ],
            options={"ordering": ["name", "id"]},
        ),
        migrations.CreateModel(
            name="School",
            fields=[
                ("id", models.CharField(default=accounts.models.new_id, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(help_text="EMIS code", max_length=64, unique=True)),
                ("address", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "cluster",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="schools",
                        to="accounts.cluster",
                    ),
                ),
                (
                    "district",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="schools",
                        to="accounts.district",
                    ),
                ),
            ],
            options={"ordering": ["name", "id"]},
        ),
        migrations.CreateModel(
            name="User",
            fields=[
                ("id", models.CharField(default=accounts.models.new_id, max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("phone_number", models.CharField(max_length=32, unique=True)),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("CEO", "Chief Executive Officer"),
                            ("DEO", "District Education Officer"),
                            ("DDEO", "Deputy District Education Officer"),
                            ("AEO", "Assistant Education Officer"),
                            ("HEAD_TEACHER", "Head Teacher"),
                            ("TEACHER", "Teacher"),
                            ("COACH", "Coach"),
                            ("TRAINING_MANAGER", "Training Manager"),
                        ],
                        max_length=32,
                    ),
                ),
                ("school_id", models.CharField(blank=True, max_length=64, null=True)),
                ("school_name", models.CharField(blank=True, max_length=255, null=True)),
                ("cluster_id", models.CharField(blank=True, max_length=64, null=True)),
                ("district_id", models.CharField(blank=True, max_length=64, null=True)),
                ("assigned_schools", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["name", "phone_number"]},
        ),
        migrations.AddIndex(
            model_name="user",
            index=models.Index(fields=["role"], name="accounts_user_role_idx"),
        ),
    ]
