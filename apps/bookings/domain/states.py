"""
Booking State Machine

A booking carries two coupled fields, ``status`` and ``payment_status``.
Only some combinations are meaningful, so the pair is modelled as a
single variant, BookingState, whose members are exactly the legal joint
states. Transitions are a lookup in TRANSITIONS; anything not listed
there raises IllegalStateTransition.

    PENDING ──payment succeeded──▶ CONFIRMED ──window elapsed──▶ COMPLETED
       │                              │
       ├──hold expired──▶ EXPIRED     └──cancel──▶ CANCELLED_REFUNDED
       ├──payment failed (hold live)──▶ CANCELLED_PAYMENT_FAILED
       ├──payment failed (hold over)──▶ EXPIRED_PAYMENT_FAILED
       └──cancel──▶ CANCELLED_UNPAID
"""

from enum import Enum

from .exceptions import IllegalStateTransition


class BookingStatus(Enum):
    PENDING = 'pending'          # Waiting for payment (hold running)
    CONFIRMED = 'confirmed'      # Paid
    CANCELLED = 'cancelled'      # Cancelled by driver, owner or failed payment
    EXPIRED = 'expired'          # Hold ran out
    COMPLETED = 'completed'      # Window elapsed


class PaymentStatus(Enum):
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class BookingState(Enum):
    PENDING = (BookingStatus.PENDING, PaymentStatus.PENDING)
    CONFIRMED = (BookingStatus.CONFIRMED, PaymentStatus.PAID)
    CANCELLED_UNPAID = (BookingStatus.CANCELLED, PaymentStatus.PENDING)
    CANCELLED_PAYMENT_FAILED = (BookingStatus.CANCELLED, PaymentStatus.FAILED)
    CANCELLED_REFUNDED = (BookingStatus.CANCELLED, PaymentStatus.REFUNDED)
    EXPIRED = (BookingStatus.EXPIRED, PaymentStatus.PENDING)
    EXPIRED_PAYMENT_FAILED = (BookingStatus.EXPIRED, PaymentStatus.FAILED)
    COMPLETED = (BookingStatus.COMPLETED, PaymentStatus.PAID)

    @property
    def status(self) -> BookingStatus:
        return self.value[0]

    @property
    def payment_status(self) -> PaymentStatus:
        return self.value[1]

    @property
    def label(self) -> str:
        return f"{self.status.value}/{self.payment_status.value}"

    @property
    def holds_capacity(self) -> bool:
        """Pending and confirmed bookings occupy the driveway."""
        return self.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)

    @property
    def is_terminal(self) -> bool:
        return not self.holds_capacity

    @classmethod
    def from_fields(cls, status, payment_status) -> 'BookingState':
        """
        Resolve stored field values (enum members or their string values).

        Raises ValueError for a combination that is not a legal state.
        """
        key = (BookingStatus(status), PaymentStatus(payment_status))
        try:
            return _BY_FIELDS[key]
        except KeyError:
            raise ValueError(
                f"Illegal booking state {key[0].value}/{key[1].value}"
            ) from None


_BY_FIELDS = {state.value: state for state in BookingState}

# Statuses that still consume driveway capacity
HOLDING_STATUSES = frozenset(
    state.status for state in BookingState if state.holds_capacity
)


class Trigger(Enum):
    PAYMENT_SUCCEEDED = 'payment_succeeded'
    HOLD_EXPIRED = 'hold_expired'
    PAYMENT_FAILED = 'payment_failed'
    PAYMENT_FAILED_AFTER_HOLD = 'payment_failed_after_hold'
    CANCEL = 'cancel'
    COMPLETE = 'complete'


TRANSITIONS = {
    (BookingState.PENDING, Trigger.PAYMENT_SUCCEEDED): BookingState.CONFIRMED,
    (BookingState.PENDING, Trigger.HOLD_EXPIRED): BookingState.EXPIRED,
    (BookingState.PENDING, Trigger.PAYMENT_FAILED): BookingState.CANCELLED_PAYMENT_FAILED,
    (BookingState.PENDING, Trigger.PAYMENT_FAILED_AFTER_HOLD): BookingState.EXPIRED_PAYMENT_FAILED,
    (BookingState.PENDING, Trigger.CANCEL): BookingState.CANCELLED_UNPAID,
    (BookingState.CONFIRMED, Trigger.CANCEL): BookingState.CANCELLED_REFUNDED,
    (BookingState.CONFIRMED, Trigger.COMPLETE): BookingState.COMPLETED,
}


def next_state(state: BookingState, trigger: Trigger, booking_id=None) -> BookingState:
    """Target of ``trigger`` from ``state``, or IllegalStateTransition."""
    try:
        return TRANSITIONS[(state, trigger)]
    except KeyError:
        raise IllegalStateTransition(state, trigger, booking_id) from None


def can_apply(state: BookingState, trigger: Trigger) -> bool:
    return (state, trigger) in TRANSITIONS
