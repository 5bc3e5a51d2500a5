"""Database models for users and the organizational hierarchy."""
from __future__ import annotations

import uuid

from django.db import models

from . import hierarchy


def new_id() -> str:
    return str(uuid.uuid4())


class District(models.Model):
    id = models.CharField(max_length=64, primary_key=True, default=new_id)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class Cluster(models.Model):
    """A markaz: a group of schools overseen by an AEO."""

    id = models.CharField(max_length=64, primary_key=True, default=new_id)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, unique=True)
    district = models.ForeignKey(District, related_name="clusters", on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return self.name


class School(models.Model):
    id = models.CharField(max_length=64, primary_key=True, default=new_id)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, unique=True, help_text="EMIS code")
    cluster = models.ForeignKey(Cluster, related_name="schools", on_delete=models.CASCADE)
    district = models.ForeignKey(District, related_name="schools", on_delete=models.CASCADE)
    address = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class User(models.Model):
    """A staff identity placed somewhere in the education hierarchy.

    Organizational references are plain id columns; the session layer that
    authenticates users lives outside this service.
    """

    id = models.CharField(max_length=64, primary_key=True, default=new_id)
    name = models.CharField(max_length=255)
    phone_number = models.CharField(max_length=32, unique=True)
    role = models.CharField(max_length=32, choices=hierarchy.ROLE_CHOICES)
    school_id = models.CharField(max_length=64, null=True, blank=True)
    school_name = models.CharField(max_length=255, null=True, blank=True)
    cluster_id = models.CharField(max_length=64, null=True, blank=True)
    district_id = models.CharField(max_length=64, null=True, blank=True)
    assigned_schools = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "phone_number"]
        indexes = [
            models.Index(fields=["role"], name="accounts_user_role_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.role})"

    # Lets DRF treat a resolved identity as request.user.
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def rank(self) -> int:
        return hierarchy.rank_of(self.role)

    def sync_school(self) -> None:
        """Copy school name, cluster and district from the referenced school."""

        if not self.school_id:
            return
        school = School.objects.filter(id=self.school_id).first()
        if school is None:
            return
        self.school_name = school.name
        self.cluster_id = school.cluster_id
        self.district_id = school.district_id
