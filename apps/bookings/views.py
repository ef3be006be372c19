"""API views for the booking domain."""

from __future__ import annotations

from django.utils import timezone  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.filters import OrderingFilter  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.application.message_bus import message_bus

from .application.command_handlers import CancelBookingCommand, CreateBookingCommand
from .filters import BookingFilterSet
from .models import Booking
from .serializers import BookingCancelSerializer, BookingCreateSerializer, BookingSerializer


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Bookings the caller made or that sit on the caller's driveways.

    Status fields are never writable here; every change goes through the
    booking command handlers.
    """

    queryset = Booking.objects.select_related("driveway", "driver", "driveway__owner").all()
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = BookingFilterSet
    ordering_fields = ["start_time", "created_at", "total_price"]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        if self.action == "cancel":
            return BookingCancelSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if not user.is_authenticated:
            return qs.none()
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return qs
        return qs.visible_to(user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        booking = message_bus.handle_command(
            CreateBookingCommand(
                driveway_id=data["driveway"],
                driver_id=request.user.id,
                start_time=data["start_time"],
                end_time=data["end_time"],
                now=timezone.now(),
                vehicle_info=data["vehicle_info"],
                special_requests=data["special_requests"],
            )
        )
        booking = self.get_queryset().get(pk=booking.pk)
        read_serializer = BookingSerializer(booking, context=self.get_serializer_context())
        headers = self.get_success_headers(read_serializer.data)
        return Response(read_serializer.data, status=status.HTTP_201_CREATED, headers=headers)

    @action(detail=True, methods=["put", "post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = message_bus.handle_command(
            CancelBookingCommand(
                booking_id=booking.pk,
                cancelled_by=request.user.id,
                now=timezone.now(),
                reason=serializer.validated_data["reason"],
            )
        )
        return Response(
            {"status": booking.status, "payment_status": booking.payment_status},
            status=status.HTTP_200_OK,
        )
