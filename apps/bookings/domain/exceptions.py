"""
Booking Domain Errors

Every business rejection the engine can produce. None of these are
transient, so the retry policy never retries them.
"""


class BookingError(Exception):
    """Base class for booking engine errors."""

    code = 'booking_error'
    default_message = 'Booking request could not be processed.'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidBookingWindow(BookingError):
    """
    The requested window is malformed, too short or in the past.

    ``reason`` is one of the WindowRejection values.
    """

    code = 'validation_error'
    default_message = 'Invalid booking window.'

    def __init__(self, reason, message: str | None = None):
        super().__init__(message or reason.describe())
        self.reason = reason


class SlotUnavailable(BookingError):
    """The driveway has no spare capacity for the requested window."""

    code = 'slot_unavailable'
    default_message = 'Driveway is fully booked for the selected time range.'


class SelfBookingNotAllowed(BookingError):
    """An owner tried to book their own driveway."""

    code = 'self_booking_not_allowed'
    default_message = 'You cannot book your own driveway.'


class IllegalStateTransition(BookingError):
    """A transition was applied to a booking in a state that does not allow it."""

    code = 'illegal_state_transition'
    default_message = 'Booking could not be updated.'

    def __init__(self, state, trigger, booking_id=None):
        subject = f"booking {booking_id}" if booking_id is not None else "booking"
        super().__init__(
            f"Cannot apply {trigger.value} to {subject} in state {state.label}"
        )
        self.state = state
        self.trigger = trigger
        self.booking_id = booking_id


class BookingNotFound(BookingError):
    code = 'not_found'
    default_message = 'Booking not found.'


class DrivewayNotFound(BookingError):
    """The driveway does not exist or is not accepting bookings."""

    code = 'not_found'
    default_message = 'Driveway not found or not available for booking.'


class TransitionNotDue(BookingError):
    """A time-driven transition was requested before its deadline."""

    code = 'transition_not_due'
    default_message = 'Booking could not be updated.'


class PaymentMismatch(BookingError):
    """A payment signal referenced a different intent than the booking holds."""

    code = 'payment_mismatch'
    default_message = 'Payment does not belong to this booking.'


class HoldExpired(BookingError):
    """Payment was requested after the booking's hold ran out."""

    code = 'hold_expired'
    default_message = 'The payment window for this booking has closed.'
