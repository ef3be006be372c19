"""Serializers for the driveways domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import AvailabilityWindow, Driveway


class DrivewaySerializer(serializers.ModelSerializer):
    owner_id = serializers.ReadOnlyField(source="owner.id")

    class Meta:
        model = Driveway
        fields = [
            "id",
            "owner_id",
            "title",
            "address",
            "description",
            "base_price_per_hour",
            "capacity",
            "car_size",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "owner_id", "created_at", "updated_at"]


class AvailabilityWindowSerializer(serializers.ModelSerializer):
    class Meta:
        model = AvailabilityWindow
        fields = ["id", "date", "start_time", "end_time", "price_per_hour", "created_at"]
        read_only_fields = ["id", "created_at"]

    def validate(self, attrs):  # type: ignore
        if attrs["end_time"] <= attrs["start_time"]:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})
        return attrs


class QuoteQuerySerializer(serializers.Serializer):
    """Query parameters of the quote endpoint."""

    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
