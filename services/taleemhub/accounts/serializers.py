"""Serializers for users and organizational units."""
from __future__ import annotations

from rest_framework import serializers

from .models import Cluster, District, School, User


class DistrictSerializer(serializers.ModelSerializer):
    class Meta:
        model = District
        fields = ["id", "name", "code", "created_at"]


class ClusterSerializer(serializers.ModelSerializer):
    class Meta:
        model = Cluster
        fields = ["id", "name", "code", "district", "created_at"]


class SchoolSerializer(serializers.ModelSerializer):
    class Meta:
        model = School
        fields = ["id", "name", "code", "cluster", "district", "address", "created_at"]

    def validate(self, attrs):  # type: ignore[override]
        cluster = attrs.get("cluster") or getattr(self.instance, "cluster", None)
        district = attrs.get("district") or getattr(self.instance, "district", None)
        if cluster is not None and district is not None and cluster.district_id != district.id:
            raise serializers.ValidationError({"cluster": "Cluster belongs to another district."})
        return attrs


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "name",
            "phone_number",
            "role",
            "school_id",
            "school_name",
            "cluster_id",
            "district_id",
            "assigned_schools",
            "is_active",
            "created_at",
            "updated_at",
        ]

    def validate_assigned_schools(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Must be a list of school names.")
        return value

    def create(self, validated_data):  # type: ignore[override]
        user = User(**validated_data)
        user.sync_school()
        user.save()
        return user

    def update(self, instance, validated_data):  # type: ignore[override]
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        if "school_id" in validated_data:
            instance.sync_school()
        instance.save()
        return instance
