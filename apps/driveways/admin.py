"""Admin registrations for driveways."""

from __future__ import annotations

from django.contrib import admin

from .models import AvailabilityWindow, Driveway


class AvailabilityWindowInline(admin.TabularInline):
    model = AvailabilityWindow
    extra = 0


@admin.register(Driveway)
class DrivewayAdmin(admin.ModelAdmin):
    list_display = ("title", "owner", "address", "base_price_per_hour", "capacity", "is_active", "created_at")
    list_filter = ("is_active", "car_size")
    search_fields = ("title", "address", "owner__email")
    readonly_fields = ("created_at", "updated_at")
    inlines = [AvailabilityWindowInline]


@admin.register(AvailabilityWindow)
class AvailabilityWindowAdmin(admin.ModelAdmin):
    list_display = ("driveway", "date", "start_time", "end_time", "price_per_hour")
    list_filter = ("date",)
    search_fields = ("driveway__title",)
