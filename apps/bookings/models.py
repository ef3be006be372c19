"""Booking models for Parkway."""

from __future__ import annotations

import secrets

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.db.models import Q  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from .domain.states import HOLDING_STATUSES, BookingState
from shared.domain.value_objects import TimeWindow


def _legal_state_condition() -> Q:
    condition = Q()
    for state in BookingState:
        condition |= Q(status=state.status.value, payment_status=state.payment_status.value)
    return condition


class BookingQuerySet(models.QuerySet):
    def holding(self):
        """Bookings that still consume driveway capacity."""
        return self.filter(status__in=[status.value for status in HOLDING_STATUSES])

    def overlapping(self, start, end):
        return self.filter(start_time__lt=end, end_time__gt=start)

    def visible_to(self, user):
        return self.filter(Q(driver=user) | Q(driveway__owner=user))


class Booking(models.Model):
    """A driver's reservation of one unit of driveway capacity."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        CONFIRMED = "confirmed", _("Confirmed")
        CANCELLED = "cancelled", _("Cancelled")
        EXPIRED = "expired", _("Expired")
        COMPLETED = "completed", _("Completed")

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Payment failed")
        REFUNDED = "refunded", _("Refunded")

    class CancellationSource(models.TextChoices):
        DRIVER = "driver", _("Driver")
        OWNER = "owner", _("Owner")
        SYSTEM = "system", _("System")

    driveway = models.ForeignKey(
        "driveways.Driveway",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    pricing = models.JSONField(
        default=dict,
        blank=True,
        help_text=_("Price breakdown captured when the booking was admitted."),
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
        editable=False,
    )
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        editable=False,
    )
    payment_intent_ref = models.CharField(max_length=255, null=True, blank=True, unique=True)
    vehicle_info = models.JSONField(default=dict, blank=True)
    special_requests = models.TextField(blank=True)
    expires_at = models.DateTimeField(
        help_text=_("Hold deadline; an unpaid booking expires after it."),
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_source = models.CharField(
        max_length=16,
        choices=CancellationSource.choices,
        blank=True,
    )
    cancellation_reason = models.CharField(max_length=255, blank=True)
    payment_failure_reason = models.CharField(max_length=255, blank=True)
    refund_ref = models.CharField(
        max_length=255,
        blank=True,
        help_text=_("Gateway refund id once the charge has been returned."),
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_time__gt=models.F("start_time")),
                name="booking_end_after_start",
            ),
            models.CheckConstraint(
                condition=_legal_state_condition(),
                name="booking_legal_state",
            ),
            models.CheckConstraint(
                condition=Q(total_price__gt=0),
                name="booking_positive_price",
            ),
        ]
        indexes = [
            models.Index(fields=["driveway", "start_time", "end_time"], name="booking_driveway_window_idx"),
            models.Index(fields=["status", "expires_at"], name="booking_status_expires_idx"),
            models.Index(fields=["status", "end_time"], name="booking_status_end_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} for driveway {self.driveway_id}"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return secrets.token_hex(4).upper()

    @property
    def state(self) -> BookingState:
        return BookingState.from_fields(self.status, self.payment_status)

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(self.start_time, self.end_time)

    @property
    def owner_id(self):
        return self.driveway.owner_id

    def set_state(self, state: BookingState) -> list[str]:
        """Write both halves of ``state``; returns the fields to save."""
        self.status = state.status.value
        self.payment_status = state.payment_status.value
        return ["status", "payment_status", "updated_at"]
