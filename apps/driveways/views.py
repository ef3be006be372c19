"""Driveway API views."""

from __future__ import annotations

from django.db.models import Q  # type: ignore
from django.utils import timezone  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.filters import OrderingFilter  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.services import booking_currency, quote_price

from .filters import DrivewayFilterSet
from .models import Driveway
from .serializers import AvailabilityWindowSerializer, DrivewaySerializer, QuoteQuerySerializer


class IsDrivewayOwnerOrAdmin(permissions.BasePermission):
    """Read access for everyone; changes only by the owner or staff."""

    def has_object_permission(self, request, view, obj: Driveway):  # type: ignore
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if not user.is_authenticated:
            return False
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return True
        return obj.owner_id == user.id


class DrivewayViewSet(viewsets.ModelViewSet):
    """Viewset for listing and managing driveways."""

    queryset = Driveway.objects.select_related("owner").all()
    serializer_class = DrivewaySerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly, IsDrivewayOwnerOrAdmin]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = DrivewayFilterSet
    ordering_fields = ["base_price_per_hour", "capacity", "created_at"]

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        user = self.request.user
        if not user.is_authenticated:
            return qs.filter(is_active=True)
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return qs
        # Owners keep seeing their deactivated listings
        return qs.filter(Q(is_active=True) | Q(owner=user))

    def perform_create(self, serializer):  # type: ignore
        serializer.save(owner=self.request.user)

    def destroy(self, request, *args, **kwargs):  # type: ignore
        # Bookings reference driveways, so listings are deactivated instead
        driveway = self.get_object()
        driveway.is_active = False
        driveway.save(update_fields=["is_active", "updated_at"])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get"], permission_classes=[permissions.AllowAny])
    def quote(self, request, pk=None):  # type: ignore
        """Provisional price for a window; demand is not applied to quotes."""
        driveway = self.get_object()
        params = QuoteQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        breakdown = quote_price(
            driveway,
            params.validated_data["start_time"],
            params.validated_data["end_time"],
            now=timezone.now(),
        )
        data = breakdown.to_dict()
        data["driveway_id"] = driveway.pk
        data["currency"] = booking_currency()
        return Response(data)

    @action(detail=True, methods=["get", "post"])
    def availability(self, request, pk=None):  # type: ignore
        driveway = self.get_object()
        if request.method == "GET":
            windows = driveway.availability_windows.all()
            date = request.query_params.get("date")
            if date:
                windows = windows.filter(date=date)
            return Response(AvailabilityWindowSerializer(windows, many=True).data)

        serializer = AvailabilityWindowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save(driveway=driveway)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
