"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .application.command_handlers import (
    CompleteBookingCommand,
    ExpireBookingCommand,
)
from .domain.exceptions import BookingNotFound, IllegalStateTransition, TransitionNotDue
from .models import Booking
from shared.application.message_bus import message_bus

logger = logging.getLogger(__name__)


@shared_task(name="bookings.expire_booking_hold")
def expire_booking_hold(booking_id: int) -> str:
    """Expire one booking when its hold runs out; scheduled at creation."""

    try:
        booking = message_bus.handle_command(
            ExpireBookingCommand(booking_id=booking_id, now=timezone.now())
        )
    except BookingNotFound:
        return "skipped"
    except TransitionNotDue:
        return "not_due"
    # None when the booking was paid, cancelled or already swept
    return "skipped" if booking is None else "expired"


def schedule_hold_expiry(event) -> None:
    """BookingCreated handler: run ``expire_booking_hold`` at the hold deadline."""
    countdown = max((event.expires_at - timezone.now()).total_seconds(), 0)
    expire_booking_hold.apply_async(args=[event.booking_id], countdown=countdown)
    logger.debug(f"Hold expiry for booking {event.booking_id} scheduled in {countdown:.0f}s")


# ============================================================================
# PERIODIC TASKS (Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> dict[str, int]:
    """
    Expire PENDING bookings whose hold deadline has passed.

    Safety net for holds whose scheduled task was lost. Runs every minute.
    """
    now = timezone.now()
    expired_count = 0

    overdue = Booking.objects.filter(
        status=Booking.Status.PENDING,
        expires_at__lte=now,
    ).values_list("pk", flat=True)

    for booking_id in list(overdue):
        if message_bus.handle_command(ExpireBookingCommand(booking_id=booking_id, now=now)) is None:
            logger.info(f"Booking {booking_id} settled before it could expire")
        else:
            expired_count += 1

    if expired_count > 0:
        logger.info(f"Expired {expired_count} pending bookings")

    return {"expired": expired_count}


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """
    Complete CONFIRMED bookings whose window has elapsed.

    Runs every 15 minutes.
    """
    now = timezone.now()
    completed_count = 0

    finished = Booking.objects.filter(
        status=Booking.Status.CONFIRMED,
        end_time__lte=now,
    ).values_list("pk", flat=True)

    for booking_id in list(finished):
        try:
            message_bus.handle_command(CompleteBookingCommand(booking_id=booking_id, now=now))
            completed_count += 1
        except IllegalStateTransition:
            logger.info(f"Booking {booking_id} cancelled before it could complete")

    if completed_count > 0:
        logger.info(f"Completed {completed_count} bookings")

    return {"completed": completed_count}
