"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Booking
from .services import booking_rules


class BookingCreateSerializer(serializers.Serializer):
    """Booking request from a driver.

    Only input shape and the maximum length policy are checked here; the
    window rules, self-booking and capacity are decided by the engine.
    """

    driveway = serializers.IntegerField(min_value=1)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    vehicle_info = serializers.JSONField(required=False, default=dict)
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_vehicle_info(self, value):  # type: ignore
        if not isinstance(value, dict):
            raise serializers.ValidationError("Vehicle info must be an object.")
        return value

    def validate(self, attrs):  # type: ignore
        max_duration = booking_rules().max_duration
        if attrs["end_time"] - attrs["start_time"] > max_duration:
            hours = int(max_duration.total_seconds() // 3600)
            raise serializers.ValidationError(
                {"end_time": f"Maximum booking duration is {hours} hours."}
            )
        return attrs


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)


class BookingSerializer(serializers.ModelSerializer):
    """Detailed booking representation."""

    driver_id = serializers.ReadOnlyField(source="driver.id")
    driveway_id = serializers.ReadOnlyField(source="driveway.id")
    driveway_title = serializers.ReadOnlyField(source="driveway.title")
    driveway_address = serializers.ReadOnlyField(source="driveway.address")

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "driver_id",
            "driveway_id",
            "driveway_title",
            "driveway_address",
            "start_time",
            "end_time",
            "status",
            "payment_status",
            "total_price",
            "currency",
            "pricing",
            "vehicle_info",
            "special_requests",
            "expires_at",
            "confirmed_at",
            "cancelled_at",
            "cancellation_source",
            "cancellation_reason",
            "payment_failure_reason",
            "refund_ref",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
