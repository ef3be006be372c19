"""Driveway models for Parkway.

A driveway is bookable capacity owned by one user. Availability windows
let the owner charge a different hourly rate for part of a given day;
they are advisory and never consulted by the reservation guard.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.bookings.domain.pricing import RateOverride


class Driveway(models.Model):
    """A parking space offered by its owner."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="driveways",
    )
    title = models.CharField(max_length=255)
    address = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    base_price_per_hour = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    capacity = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
        help_text=_("How many cars can park at the same time."),
    )
    car_size = models.CharField(
        max_length=20,
        blank=True,
        help_text=_("Largest vehicle class that fits (compact, midsize, large)."),
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Driveway")
        verbose_name_plural = _("Driveways")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(capacity__gte=1),
                name="driveway_capacity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(base_price_per_hour__gte=0),
                name="driveway_price_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "is_active"], name="driveway_owner_active_idx"),
        ]

    def __str__(self) -> str:
        return self.title

    def rate_overrides(self) -> list[RateOverride]:
        return [window.as_rate_override() for window in self.availability_windows.all()]


class AvailabilityWindow(models.Model):
    """Owner-defined hourly rate for part of one local day."""

    driveway = models.ForeignKey(
        Driveway,
        on_delete=models.CASCADE,
        related_name="availability_windows",
    )
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    price_per_hour = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Availability window")
        verbose_name_plural = _("Availability windows")
        ordering = ["date", "start_time"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="availability_window_valid_range",
            ),
        ]
        indexes = [
            models.Index(fields=["driveway", "date"], name="avail_window_driveway_date_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.driveway_id}: {self.date} {self.start_time}-{self.end_time}"

    def as_rate_override(self) -> RateOverride:
        return RateOverride(
            day=self.date,
            start=self.start_time,
            end=self.end_time,
            price_per_hour=self.price_per_hour,
        )
