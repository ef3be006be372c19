"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits and handed to
the notification fan-out; the engine never delivers them itself.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from shared.domain.base import DomainEvent


@dataclass
class BookingEvent(DomainEvent):
    booking_id: int = None
    driveway_id: int = None
    driver_id: int = None
    owner_id: int = None
    start_time: datetime = None
    end_time: datetime = None


@dataclass
class BookingCreated(BookingEvent):
    """
    Event: A driver was admitted to a slot (PENDING/PENDING)

    Triggers:
    - Notify the driveway owner
    - Start the hold expiry timer
    """
    name = 'booking.created'

    total_price: Decimal = None
    expires_at: datetime = None


@dataclass
class BookingConfirmed(BookingEvent):
    """
    Event: Payment succeeded (PENDING -> CONFIRMED)

    Triggers:
    - Confirmation to the driver
    - New booking notice to the owner
    """
    name = 'booking.confirmed'

    payment_intent_ref: str = ''


@dataclass
class BookingCancelled(BookingEvent):
    """
    Event: Booking was cancelled, by a person or by a failed payment

    Triggers:
    - Notify driver and owner
    """
    name = 'booking.cancelled'

    source: str = ''
    reason: str = ''
    refunded: bool = False
    previous_status: str = ''


@dataclass
class BookingExpired(BookingEvent):
    """
    Event: Hold ran out without a successful payment

    Triggers:
    - Notify the driver
    """
    name = 'booking.expired'

    payment_failed: bool = False


@dataclass
class BookingCompleted(BookingEvent):
    """Event: The booked window elapsed (CONFIRMED -> COMPLETED)"""
    name = 'booking.completed'
