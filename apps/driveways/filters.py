"""FilterSet definitions for driveway listings."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Driveway


class DrivewayFilterSet(django_filters.FilterSet):
    address = django_filters.CharFilter(field_name="address", lookup_expr="icontains")
    car_size = django_filters.CharFilter(field_name="car_size", lookup_expr="iexact")
    price_min = django_filters.NumberFilter(field_name="base_price_per_hour", lookup_expr="gte")
    price_max = django_filters.NumberFilter(field_name="base_price_per_hour", lookup_expr="lte")
    capacity_min = django_filters.NumberFilter(field_name="capacity", lookup_expr="gte")
    mine = django_filters.BooleanFilter(method="filter_mine")

    class Meta:
        model = Driveway
        fields = ["address", "car_size", "is_active"]

    def filter_mine(self, queryset, name, value):  # type: ignore
        user = getattr(self.request, "user", None)
        if not value or user is None or not user.is_authenticated:
            return queryset
        return queryset.filter(owner=user)
