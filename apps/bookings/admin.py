"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "driveway",
        "driver",
        "status",
        "payment_status",
        "start_time",
        "end_time",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "payment_status", "cancellation_source", "start_time")
    search_fields = ("booking_code", "driveway__title", "driver__email", "payment_intent_ref")
    # Status changes go through the command handlers only
    readonly_fields = (
        "booking_code",
        "status",
        "payment_status",
        "total_price",
        "pricing",
        "payment_intent_ref",
        "expires_at",
        "confirmed_at",
        "cancelled_at",
        "cancellation_source",
        "refund_ref",
        "completed_at",
        "created_at",
        "updated_at",
    )

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False
