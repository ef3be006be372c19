"""
Booking event handlers

Subscribed to the message bus in NotificationsConfig.ready(); they run
after the booking transaction has committed. A failing handler is logged
by the bus and does not affect the other handlers.
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model  # type: ignore

from apps.bookings.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingExpired,
)
from shared.application.message_bus import message_bus

from .models import Notification
from .services import notify, send_email_notification

logger = logging.getLogger(__name__)


def _window(event) -> str:
    return f"{event.start_time:%Y-%m-%d %H:%M} - {event.end_time:%H:%M}"


def _email(user_id: int) -> str:
    return get_user_model().objects.filter(pk=user_id).values_list("email", flat=True).first() or ""


def on_booking_created(event: BookingCreated) -> None:
    notify(
        event.driver_id,
        "Complete your payment",
        f"Your spot for {_window(event)} is held until {event.expires_at:%H:%M}. "
        f"Pay {event.total_price} to confirm it.",
        kind=Notification.Kind.INFO,
        event=event.name,
        booking_id=event.booking_id,
    )


def on_booking_confirmed(event: BookingConfirmed) -> None:
    notify(
        event.driver_id,
        "Booking confirmed",
        f"Your parking for {_window(event)} is confirmed.",
        kind=Notification.Kind.SUCCESS,
        event=event.name,
        booking_id=event.booking_id,
    )
    notify(
        event.owner_id,
        "New booking",
        f"Your driveway has been booked for {_window(event)}.",
        kind=Notification.Kind.SUCCESS,
        event=event.name,
        booking_id=event.booking_id,
    )
    send_email_notification(
        _email(event.driver_id),
        "Your parking booking is confirmed",
        text_message=f"Your parking for {_window(event)} is confirmed. See you there!",
    )


def on_booking_cancelled(event: BookingCancelled) -> None:
    if event.source == "system":
        notify(
            event.driver_id,
            "Payment failed",
            f"Payment for your booking {_window(event)} failed and the spot was released."
            + (f" Reason: {event.reason}" if event.reason else ""),
            kind=Notification.Kind.ERROR,
            event=event.name,
            booking_id=event.booking_id,
        )
        return

    refund_note = " A full refund has been issued." if event.refunded else ""
    if event.source == "driver":
        recipient, title = event.owner_id, "Booking cancelled by driver"
    else:
        recipient, title = event.driver_id, "Booking cancelled by owner"
    notify(
        recipient,
        title,
        f"The booking for {_window(event)} was cancelled.{refund_note}",
        kind=Notification.Kind.WARNING,
        event=event.name,
        booking_id=event.booking_id,
    )
    if event.refunded:
        send_email_notification(
            _email(event.driver_id),
            "Your parking booking was cancelled",
            text_message=f"The booking for {_window(event)} was cancelled.{refund_note}",
        )


def on_booking_expired(event: BookingExpired) -> None:
    reason = "payment failed after the hold ran out" if event.payment_failed else "payment was not completed in time"
    notify(
        event.driver_id,
        "Booking expired",
        f"Your hold for {_window(event)} expired because {reason}.",
        kind=Notification.Kind.WARNING,
        event=event.name,
        booking_id=event.booking_id,
    )


def on_booking_completed(event: BookingCompleted) -> None:
    notify(
        event.driver_id,
        "Thanks for parking with us",
        f"Your booking for {_window(event)} is complete.",
        kind=Notification.Kind.INFO,
        event=event.name,
        booking_id=event.booking_id,
    )


EVENT_HANDLERS = {
    BookingCreated: on_booking_created,
    BookingConfirmed: on_booking_confirmed,
    BookingCancelled: on_booking_cancelled,
    BookingExpired: on_booking_expired,
    BookingCompleted: on_booking_completed,
}


def register_event_handlers(bus=message_bus) -> None:
    for event_type, handler in EVENT_HANDLERS.items():
        bus.register_event_handler(event_type, handler)
    logger.debug("Notification handlers registered")
