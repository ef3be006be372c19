"""FilterSet definitions for booking listings."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Booking


class BookingFilterSet(django_filters.FilterSet):
    """Status filters plus ``role`` to split a user's own trips from bookings on their driveways."""

    status = django_filters.ChoiceFilter(choices=Booking.Status.choices)
    payment_status = django_filters.ChoiceFilter(choices=Booking.PaymentStatus.choices)
    driveway = django_filters.NumberFilter(field_name="driveway_id")
    starts_after = django_filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="gte")
    starts_before = django_filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="lt")
    role = django_filters.ChoiceFilter(
        choices=(("driver", "driver"), ("owner", "owner")),
        method="filter_role",
    )

    class Meta:
        model = Booking
        fields = ["status", "payment_status", "driveway"]

    def filter_role(self, queryset, name, value):  # type: ignore
        user = getattr(self.request, "user", None)
        if user is None or not user.is_authenticated:
            return queryset.none()
        if value == "owner":
            return queryset.filter(driveway__owner=user)
        return queryset.filter(driver=user)
