"""
Booking Command Handlers

These are the use cases for the booking domain and the only code that
writes a booking's ``status`` / ``payment_status`` pair. Each transition
handler locks the booking row, asks the state machine for the target
state, writes both fields together and records a domain event that is
published after commit.

Commands:
- CreateBookingCommand: Price and admit a new booking (PENDING/PENDING)
- StartPaymentCommand: Create or reuse the payment intent for a booking
- ConfirmPaymentCommand: Payment succeeded (-> CONFIRMED/PAID)
- FailPaymentCommand: Payment failed (-> CANCELLED/FAILED or EXPIRED/FAILED)
- CancelBookingCommand: Driver or owner cancellation (refunds if paid)
- ExpireBookingCommand: Hold ran out (-> EXPIRED/PENDING)
- CompleteBookingCommand: Window elapsed (-> COMPLETED/PAID)
"""

from dataclasses import dataclass, field
from datetime import datetime
import logging

from django.db import DatabaseError

from shared.application.message_bus import message_bus
from shared.application.retry import RetryPolicy
from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import Money
from apps.bookings.domain.events import (
    BookingCancelled,
    BookingCompleted,
    BookingConfirmed,
    BookingExpired,
)
from apps.bookings.domain.exceptions import (
    BookingNotFound,
    HoldExpired,
    IllegalStateTransition,
    PaymentMismatch,
    SelfBookingNotAllowed,
    TransitionNotDue,
)
from apps.bookings.domain.states import BookingState, Trigger, can_apply, next_state

logger = logging.getLogger(__name__)

# Unpaid end states; a payment success arriving for one of them is refunded
UNPAID_TERMINAL_STATES = frozenset({
    BookingState.EXPIRED,
    BookingState.EXPIRED_PAYMENT_FAILED,
    BookingState.CANCELLED_UNPAID,
    BookingState.CANCELLED_PAYMENT_FAILED,
})


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    """
    Command to create a new booking

    ``now`` is the request instant; every time rule is checked against it.
    """
    driveway_id: int
    driver_id: int
    start_time: datetime
    end_time: datetime
    now: datetime
    vehicle_info: dict = field(default_factory=dict)
    special_requests: str = ''


@dataclass
class StartPaymentCommand:
    """Command to obtain a payment intent for a pending booking"""
    booking_id: int
    driver_id: int
    now: datetime


@dataclass
class ConfirmPaymentCommand:
    """Command to confirm a booking after the gateway reported success"""
    booking_id: int
    payment_intent_ref: str
    now: datetime


@dataclass
class FailPaymentCommand:
    """Command to record a failed payment"""
    booking_id: int
    now: datetime
    reason: str = ''
    payment_intent_ref: str | None = None


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking"""
    booking_id: int
    cancelled_by: int  # Driver or driveway owner
    now: datetime
    reason: str = ''


@dataclass
class ExpireBookingCommand:
    """Command to expire an unpaid booking whose hold ran out"""
    booking_id: int
    now: datetime


@dataclass
class CompleteBookingCommand:
    """Command to complete a booking whose window has elapsed"""
    booking_id: int
    now: datetime


# ===== Helpers =====

def _lock_booking(booking_id):
    from apps.bookings.models import Booking

    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise BookingNotFound() from None


def _transition(booking, trigger: Trigger) -> BookingState:
    """Target state for ``trigger``; illegal attempts are logged and re-raised."""
    try:
        return next_state(booking.state, trigger, booking.pk)
    except IllegalStateTransition as exc:
        logger.error(f"Illegal booking transition: {exc}")
        raise


def _event_fields(booking) -> dict:
    return {
        'aggregate_id': booking.pk,
        'booking_id': booking.pk,
        'driveway_id': booking.driveway_id,
        'driver_id': booking.driver_id,
        'owner_id': booking.driveway.owner_id,
        'start_time': booking.start_time,
        'end_time': booking.end_time,
    }


def _issue_refund(booking, payment_intent_ref, gateway=None, policy=None) -> str:
    """Refund the booking total against ``payment_intent_ref``; returns the refund id."""
    from apps.payments.gateway import PaymentGatewayClient

    gateway = gateway or PaymentGatewayClient.from_settings(policy=policy)
    refund_id = gateway.refund(payment_intent_ref, Money(booking.total_price, booking.currency))
    logger.info(f"Refund {refund_id} issued for booking {booking.booking_code}")
    return refund_id


# ===== Command Handlers =====

class CreateBookingHandler:
    """
    Handler for CreateBooking command

    1. Reject self-booking before the guard is consulted
    2. Recompute the authoritative price (real demand multiplier)
    3. Hand over to the slot reservation guard, which validates the
       window, serializes admission per driveway and inserts the
       PENDING/PENDING booking (BookingCreated is published after commit)
    """

    def handle(self, command: CreateBookingCommand):
        from apps.bookings.services import authoritative_price, get_active_driveway, reserve_slot

        logger.info(
            f"Creating booking on driveway {command.driveway_id} for driver "
            f"{command.driver_id}: {command.start_time.isoformat()} - {command.end_time.isoformat()}"
        )

        driveway = get_active_driveway(command.driveway_id)
        if driveway.owner_id == command.driver_id:
            logger.info(f"Driver {command.driver_id} tried to book own driveway {driveway.pk}")
            raise SelfBookingNotAllowed()

        pricing = authoritative_price(driveway, command.start_time, command.end_time, now=command.now)

        return reserve_slot(
            driveway.pk,
            command.start_time,
            command.end_time,
            command.driver_id,
            now=command.now,
            pricing=pricing,
            vehicle_info=command.vehicle_info,
            special_requests=command.special_requests,
        )


class StartPaymentHandler:
    """
    Handler for StartPayment command

    Reuses the booking's existing payment intent when there is one so
    repeated clicks never create a second charge. A hold that has run
    out is expired on the spot and no intent is created.
    """

    def __init__(self, gateway=None):
        self.gateway = gateway

    def handle(self, command: StartPaymentCommand):
        from apps.payments.gateway import get_gateway

        gateway = self.gateway or get_gateway()

        with DjangoUnitOfWork() as uow:
            booking = _lock_booking(command.booking_id)
            if booking.driver_id != command.driver_id:
                raise BookingNotFound()
            if not can_apply(booking.state, Trigger.PAYMENT_SUCCEEDED):
                raise IllegalStateTransition(booking.state, Trigger.PAYMENT_SUCCEEDED, booking.pk)

            hold_over = command.now >= booking.expires_at
            if hold_over:
                target = _transition(booking, Trigger.HOLD_EXPIRED)
                booking.save(update_fields=booking.set_state(target))
                uow.record(BookingExpired(**_event_fields(booking)))
            elif booking.payment_intent_ref:
                intent = gateway.retrieve_payment_intent(booking.payment_intent_ref)
                logger.info(f"Reusing payment intent {intent.ref} for booking {booking.booking_code}")
                return booking, intent
            else:
                amount = Money(booking.total_price, booking.currency)
                intent = gateway.create_payment_intent(amount, booking.booking_code)
                booking.payment_intent_ref = intent.ref
                booking.save(update_fields=['payment_intent_ref', 'updated_at'])

        if hold_over:
            logger.info(f"Booking {booking.booking_code} hold ran out before payment, expired")
            raise HoldExpired()
        return booking, intent


class ConfirmPaymentHandler:
    """
    Handler for confirming a booking after successful payment

    A success that lands after the booking expired or was cancelled
    unpaid cannot confirm it; the charge is refunded once, the refund id
    is kept on the booking and IllegalStateTransition is raised.
    """

    def __init__(self, gateway=None, policy: RetryPolicy | None = None):
        self.gateway = gateway
        self.policy = policy

    def handle(self, command: ConfirmPaymentCommand):
        logger.info(
            f"Confirming booking {command.booking_id} with payment {command.payment_intent_ref}"
        )

        with DjangoUnitOfWork() as uow:
            booking = _lock_booking(command.booking_id)

            if booking.payment_intent_ref and booking.payment_intent_ref != command.payment_intent_ref:
                logger.error(
                    f"Payment {command.payment_intent_ref} does not match booking "
                    f"{booking.pk} intent {booking.payment_intent_ref}"
                )
                raise PaymentMismatch()

            # Gateways redeliver success callbacks
            if booking.state is BookingState.CONFIRMED:
                logger.info(f"Booking {booking.booking_code} already confirmed, ignoring duplicate")
                return booking

            late = booking.state in UNPAID_TERMINAL_STATES
            if late:
                if not booking.refund_ref:
                    booking.refund_ref = _issue_refund(
                        booking, command.payment_intent_ref, self.gateway, self.policy
                    )
                    booking.save(update_fields=['refund_ref', 'updated_at'])
                    logger.warning(
                        f"Payment {command.payment_intent_ref} arrived after booking "
                        f"{booking.booking_code} reached {booking.state.label}, "
                        f"refund {booking.refund_ref} issued"
                    )
            else:
                target = _transition(booking, Trigger.PAYMENT_SUCCEEDED)
                update_fields = booking.set_state(target)
                booking.payment_intent_ref = command.payment_intent_ref
                booking.confirmed_at = command.now
                booking.save(update_fields=update_fields + ['payment_intent_ref', 'confirmed_at'])

                uow.record(BookingConfirmed(
                    payment_intent_ref=command.payment_intent_ref,
                    **_event_fields(booking),
                ))

        if late:
            raise IllegalStateTransition(booking.state, Trigger.PAYMENT_SUCCEEDED, booking.pk)

        logger.info(f"Booking {booking.booking_code} confirmed successfully")
        return booking


class FailPaymentHandler:
    """
    Handler for a failed payment

    While the hold is live the booking is cancelled; once the hold
    deadline has passed it is expired instead. Either way capacity is
    released and the failure is visible on the booking.
    """

    def handle(self, command: FailPaymentCommand):
        logger.info(f"Recording payment failure for booking {command.booking_id}: {command.reason}")

        with DjangoUnitOfWork() as uow:
            booking = _lock_booking(command.booking_id)

            if (
                command.payment_intent_ref
                and booking.payment_intent_ref
                and booking.payment_intent_ref != command.payment_intent_ref
            ):
                raise PaymentMismatch()

            hold_over = command.now >= booking.expires_at
            trigger = Trigger.PAYMENT_FAILED_AFTER_HOLD if hold_over else Trigger.PAYMENT_FAILED
            target = _transition(booking, trigger)

            update_fields = booking.set_state(target)
            booking.payment_failure_reason = (command.reason or 'Payment failed')[:255]
            update_fields.append('payment_failure_reason')
            if hold_over:
                uow.record(BookingExpired(payment_failed=True, **_event_fields(booking)))
            else:
                booking.cancelled_at = command.now
                booking.cancellation_source = booking.CancellationSource.SYSTEM
                booking.cancellation_reason = 'Payment failed'
                update_fields += ['cancelled_at', 'cancellation_source', 'cancellation_reason']
                uow.record(BookingCancelled(
                    source=booking.CancellationSource.SYSTEM.value,
                    reason=booking.payment_failure_reason,
                    previous_status=BookingState.PENDING.status.value,
                    **_event_fields(booking),
                ))
            booking.save(update_fields=update_fields)

        logger.warning(
            f"Booking {booking.booking_code} moved to {target.label} after payment failure"
        )
        return booking


class CancelBookingHandler:
    """
    Handler for cancelling booking

    PENDING bookings are released in the same transaction, so the freed
    unit is visible to the very next reservation. For CONFIRMED bookings
    the cancelled row is written first and the gateway refund is the last
    step before commit; if the refund fails the booking stays confirmed.
    """

    def __init__(self, gateway=None, policy: RetryPolicy | None = None):
        self.gateway = gateway
        self.policy = policy

    def handle(self, command: CancelBookingCommand):
        logger.info(f"Cancelling booking {command.booking_id}, reason: {command.reason}")

        refund_id = None
        try:
            with DjangoUnitOfWork() as uow:
                booking = _lock_booking(command.booking_id)

                if command.cancelled_by == booking.driver_id:
                    source = booking.CancellationSource.DRIVER
                elif command.cancelled_by == booking.driveway.owner_id:
                    source = booking.CancellationSource.OWNER
                else:
                    raise BookingNotFound()

                previous = booking.state
                target = _transition(booking, Trigger.CANCEL)

                update_fields = booking.set_state(target)
                booking.cancelled_at = command.now
                booking.cancellation_source = source
                booking.cancellation_reason = command.reason[:255]
                booking.save(update_fields=update_fields + [
                    'cancelled_at', 'cancellation_source', 'cancellation_reason',
                ])

                refunded = previous is BookingState.CONFIRMED and bool(booking.payment_intent_ref)
                if refunded:
                    refund_id = _issue_refund(
                        booking, booking.payment_intent_ref, self.gateway, self.policy
                    )
                    booking.refund_ref = refund_id
                    booking.save(update_fields=['refund_ref', 'updated_at'])

                uow.record(BookingCancelled(
                    source=source.value,
                    reason=command.reason,
                    refunded=refunded,
                    previous_status=previous.status.value,
                    **_event_fields(booking),
                ))
        except DatabaseError:
            if refund_id:
                logger.error(
                    f"Refund {refund_id} issued but cancellation of booking "
                    f"{command.booking_id} was not saved",
                    exc_info=True,
                )
            raise

        logger.info(f"Booking {booking.booking_code} cancelled by {source.value}")
        return booking


class ExpireBookingHandler:
    """
    Handler for expiring an unpaid hold

    Every booking gets a hold-expiry task, so most runs find the booking
    already paid or cancelled; those return None without touching it.
    """

    def handle(self, command: ExpireBookingCommand):
        with DjangoUnitOfWork() as uow:
            booking = _lock_booking(command.booking_id)
            if not can_apply(booking.state, Trigger.HOLD_EXPIRED):
                logger.info(
                    f"Booking {booking.booking_code} already {booking.state.label}, hold left as is"
                )
                return None
            if command.now < booking.expires_at:
                raise TransitionNotDue(
                    f"Hold for booking {booking.pk} runs until {booking.expires_at.isoformat()}"
                )

            target = _transition(booking, Trigger.HOLD_EXPIRED)
            booking.save(update_fields=booking.set_state(target))
            uow.record(BookingExpired(**_event_fields(booking)))

        logger.info(f"Booking {booking.booking_code} expired, hold released")
        return booking


class CompleteBookingHandler:
    """Handler for completing a booking once its window has elapsed"""

    def handle(self, command: CompleteBookingCommand):
        with DjangoUnitOfWork() as uow:
            booking = _lock_booking(command.booking_id)
            target = _transition(booking, Trigger.COMPLETE)
            if command.now < booking.end_time:
                raise TransitionNotDue(
                    f"Booking {booking.pk} runs until {booking.end_time.isoformat()}"
                )

            update_fields = booking.set_state(target)
            booking.completed_at = command.now
            booking.save(update_fields=update_fields + ['completed_at'])
            uow.record(BookingCompleted(**_event_fields(booking)))

        logger.info(f"Booking {booking.booking_code} completed")
        return booking


HANDLERS = {
    CreateBookingCommand: CreateBookingHandler(),
    StartPaymentCommand: StartPaymentHandler(),
    ConfirmPaymentCommand: ConfirmPaymentHandler(),
    FailPaymentCommand: FailPaymentHandler(),
    CancelBookingCommand: CancelBookingHandler(),
    ExpireBookingCommand: ExpireBookingHandler(),
    CompleteBookingCommand: CompleteBookingHandler(),
}


def register_handlers(bus=message_bus):
    """Wire every booking command to its handler."""
    for command_type, handler in HANDLERS.items():
        bus.register_command_handler(command_type, handler.handle)
