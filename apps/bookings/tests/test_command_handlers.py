"""Tests for the booking command handlers (state machine operations)."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest
from django.db import DatabaseError

from apps.bookings.application.command_handlers import (
    CancelBookingCommand,
    CancelBookingHandler,
    CompleteBookingCommand,
    CompleteBookingHandler,
    ConfirmPaymentCommand,
    ConfirmPaymentHandler,
    CreateBookingCommand,
    CreateBookingHandler,
    ExpireBookingCommand,
    ExpireBookingHandler,
    FailPaymentCommand,
    FailPaymentHandler,
    StartPaymentCommand,
    StartPaymentHandler,
)
from apps.bookings.domain.exceptions import (
    BookingNotFound,
    HoldExpired,
    IllegalStateTransition,
    PaymentMismatch,
    SelfBookingNotAllowed,
    TransitionNotDue,
)
from apps.bookings.domain.states import BookingState
from apps.bookings.models import Booking
from apps.payments.gateway import PaymentGatewayError, PaymentIntent
from apps.users.models import User
from shared.application.message_bus import message_bus
from shared.domain.value_objects import Money

START = datetime(2030, 1, 7, 14, 0, tzinfo=timezone.utc)


def _now():
    return datetime.now(timezone.utc)


@pytest.fixture
def pending(driveway, make_booking):
    return make_booking(driveway, start=START)


@pytest.fixture
def confirmed(driveway, make_booking):
    return make_booking(
        driveway,
        start=START,
        status="confirmed",
        payment_status="paid",
        payment_intent_ref="pi_paid_1",
    )


@pytest.fixture
def stranger(db):
    return User.objects.create_user(email="stranger@example.com", password="StrangerPass1")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_create_booking_prices_and_admits(driveway, driver):
    booking = CreateBookingHandler().handle(
        CreateBookingCommand(
            driveway_id=driveway.pk,
            driver_id=driver.pk,
            start_time=START,
            end_time=START + timedelta(hours=2),
            now=_now(),
            special_requests="Blue sedan",
        )
    )

    assert booking.state is BookingState.PENDING
    assert booking.total_price == Decimal("20.00")
    assert booking.special_requests == "Blue sedan"


@pytest.mark.django_db
def test_owner_cannot_book_own_driveway(driveway, owner):
    with pytest.raises(SelfBookingNotAllowed):
        CreateBookingHandler().handle(
            CreateBookingCommand(
                driveway_id=driveway.pk,
                driver_id=owner.pk,
                start_time=START,
                end_time=START + timedelta(hours=2),
                now=_now(),
            )
        )

    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_create_is_dispatched_through_message_bus(driveway, driver):
    booking = message_bus.handle_command(
        CreateBookingCommand(
            driveway_id=driveway.pk,
            driver_id=driver.pk,
            start_time=START,
            end_time=START + timedelta(hours=1),
            now=_now(),
        )
    )

    assert Booking.objects.get().pk == booking.pk


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_start_payment_creates_intent_once(pending, driver):
    handler = StartPaymentHandler()

    booking, intent = handler.handle(StartPaymentCommand(booking_id=pending.pk, driver_id=driver.pk, now=_now()))
    _, again = handler.handle(StartPaymentCommand(booking_id=pending.pk, driver_id=driver.pk, now=_now()))

    assert intent.ref.startswith("pi_emulated_")
    assert intent.amount == 2000
    assert booking.payment_intent_ref == intent.ref
    assert again.ref == intent.ref


@pytest.mark.django_db
def test_start_payment_for_someone_elses_booking_is_not_found(pending, stranger):
    with pytest.raises(BookingNotFound):
        StartPaymentHandler().handle(StartPaymentCommand(booking_id=pending.pk, driver_id=stranger.pk, now=_now()))


@pytest.mark.django_db
def test_start_payment_on_confirmed_booking_is_illegal(confirmed, driver):
    gateway = Mock()

    with pytest.raises(IllegalStateTransition):
        StartPaymentHandler(gateway=gateway).handle(
            StartPaymentCommand(booking_id=confirmed.pk, driver_id=driver.pk, now=_now())
        )
    gateway.create_payment_intent.assert_not_called()


@pytest.mark.django_db
def test_start_payment_after_hold_ran_out_expires_booking(pending, driver):
    gateway = Mock()

    with pytest.raises(HoldExpired):
        StartPaymentHandler(gateway=gateway).handle(
            StartPaymentCommand(booking_id=pending.pk, driver_id=driver.pk, now=pending.expires_at)
        )

    pending.refresh_from_db()
    assert pending.state is BookingState.EXPIRED
    assert pending.payment_intent_ref == ""
    gateway.create_payment_intent.assert_not_called()
    gateway.retrieve_payment_intent.assert_not_called()


@pytest.mark.django_db
def test_confirm_payment_moves_to_confirmed(pending):
    now = _now()

    booking = ConfirmPaymentHandler().handle(
        ConfirmPaymentCommand(booking_id=pending.pk, payment_intent_ref="pi_1", now=now)
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.CONFIRMED
    assert booking.payment_intent_ref == "pi_1"
    assert booking.confirmed_at == now


@pytest.mark.django_db
def test_duplicate_confirmation_is_a_no_op(confirmed):
    confirmed_at = confirmed.confirmed_at

    booking = ConfirmPaymentHandler().handle(
        ConfirmPaymentCommand(booking_id=confirmed.pk, payment_intent_ref="pi_paid_1", now=_now())
    )

    assert booking.state is BookingState.CONFIRMED
    assert booking.confirmed_at == confirmed_at


@pytest.mark.django_db
def test_confirmation_with_foreign_intent_is_rejected(pending):
    pending.payment_intent_ref = "pi_mine"
    pending.save()

    with pytest.raises(PaymentMismatch):
        ConfirmPaymentHandler().handle(
            ConfirmPaymentCommand(booking_id=pending.pk, payment_intent_ref="pi_other", now=_now())
        )

    pending.refresh_from_db()
    assert pending.state is BookingState.PENDING


@pytest.mark.django_db
def test_late_payment_on_expired_booking_is_refunded(driveway, make_booking, caplog):
    booking = make_booking(
        driveway, start=START, status="expired", payment_status="pending", payment_intent_ref="pi_late"
    )
    gateway = Mock()
    gateway.refund.return_value = "re_late"
    handler = ConfirmPaymentHandler(gateway=gateway)
    command = ConfirmPaymentCommand(booking_id=booking.pk, payment_intent_ref="pi_late", now=_now())

    with caplog.at_level(logging.INFO, logger="apps.bookings"):
        with pytest.raises(IllegalStateTransition):
            handler.handle(command)
        with pytest.raises(IllegalStateTransition):
            handler.handle(command)

    booking.refresh_from_db()
    assert booking.state is BookingState.EXPIRED
    assert booking.refund_ref == "re_late"
    gateway.refund.assert_called_once_with("pi_late", Money(Decimal("20.00"), "USD"))
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.django_db
def test_late_payment_refund_failure_keeps_no_refund_ref(driveway, make_booking):
    booking = make_booking(
        driveway, start=START, status="cancelled", payment_status="pending", payment_intent_ref="pi_late"
    )
    gateway = Mock()
    gateway.refund.side_effect = PaymentGatewayError("gateway down", status_code=503)

    with pytest.raises(PaymentGatewayError):
        ConfirmPaymentHandler(gateway=gateway).handle(
            ConfirmPaymentCommand(booking_id=booking.pk, payment_intent_ref="pi_late", now=_now())
        )

    booking.refresh_from_db()
    assert booking.refund_ref == ""


@pytest.mark.django_db
def test_confirmation_of_completed_booking_is_illegal_and_logged(driveway, make_booking, caplog):
    booking = make_booking(driveway, start=START, status="completed", payment_status="paid")
    gateway = Mock()

    with caplog.at_level(logging.ERROR, logger="apps.bookings"):
        with pytest.raises(IllegalStateTransition):
            ConfirmPaymentHandler(gateway=gateway).handle(
                ConfirmPaymentCommand(booking_id=booking.pk, payment_intent_ref="pi_again", now=_now())
            )

    booking.refresh_from_db()
    assert booking.state is BookingState.COMPLETED
    gateway.refund.assert_not_called()
    assert any("Illegal booking transition" in r.getMessage() for r in caplog.records)


@pytest.mark.django_db
def test_payment_failure_while_hold_is_live_cancels(pending):
    booking = FailPaymentHandler().handle(
        FailPaymentCommand(booking_id=pending.pk, now=_now(), reason="card_declined")
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.CANCELLED_PAYMENT_FAILED
    assert booking.cancellation_source == Booking.CancellationSource.SYSTEM
    assert booking.payment_failure_reason == "card_declined"


@pytest.mark.django_db
def test_payment_failure_after_hold_expires(pending):
    booking = FailPaymentHandler().handle(
        FailPaymentCommand(booking_id=pending.pk, now=pending.expires_at + timedelta(seconds=1))
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.EXPIRED_PAYMENT_FAILED
    assert booking.payment_failure_reason == "Payment failed"


@pytest.mark.django_db
def test_payment_failure_on_paid_booking_is_illegal(confirmed):
    with pytest.raises(IllegalStateTransition):
        FailPaymentHandler().handle(FailPaymentCommand(booking_id=confirmed.pk, now=_now()))

    confirmed.refresh_from_db()
    assert confirmed.state is BookingState.CONFIRMED


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_driver_cancels_unpaid_booking(pending, driver):
    booking = CancelBookingHandler().handle(
        CancelBookingCommand(booking_id=pending.pk, cancelled_by=driver.pk, now=_now(), reason="Plans changed")
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.CANCELLED_UNPAID
    assert booking.cancellation_source == Booking.CancellationSource.DRIVER
    assert booking.cancellation_reason == "Plans changed"


@pytest.mark.django_db
def test_owner_cancels_paid_booking_with_refund(confirmed, owner):
    gateway = Mock()
    gateway.refund.return_value = "re_1"

    booking = CancelBookingHandler(gateway=gateway).handle(
        CancelBookingCommand(booking_id=confirmed.pk, cancelled_by=owner.pk, now=_now())
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.CANCELLED_REFUNDED
    assert booking.cancellation_source == Booking.CancellationSource.OWNER
    assert booking.refund_ref == "re_1"
    gateway.refund.assert_called_once_with("pi_paid_1", Money(Decimal("20.00"), "USD"))


@pytest.mark.django_db
def test_refund_is_issued_after_cancellation_is_written(confirmed, driver):
    seen = []

    def refund(ref, amount):
        seen.append(Booking.objects.get(pk=confirmed.pk).status)
        return "re_2"

    gateway = Mock()
    gateway.refund.side_effect = refund

    CancelBookingHandler(gateway=gateway).handle(
        CancelBookingCommand(booking_id=confirmed.pk, cancelled_by=driver.pk, now=_now())
    )

    assert seen == [Booking.Status.CANCELLED]


@pytest.mark.django_db
def test_refund_without_saved_cancellation_is_logged(confirmed, driver, monkeypatch, caplog):
    original_save = Booking.save

    def save(self, *args, **kwargs):
        if "refund_ref" in (kwargs.get("update_fields") or ()):
            raise DatabaseError("disk full")
        return original_save(self, *args, **kwargs)

    monkeypatch.setattr(Booking, "save", save)
    gateway = Mock()
    gateway.refund.return_value = "re_lost"

    with caplog.at_level(logging.ERROR, logger="apps.bookings"):
        with pytest.raises(DatabaseError):
            CancelBookingHandler(gateway=gateway).handle(
                CancelBookingCommand(booking_id=confirmed.pk, cancelled_by=driver.pk, now=_now())
            )

    confirmed.refresh_from_db()
    assert confirmed.state is BookingState.CONFIRMED
    assert any("Refund re_lost issued" in r.getMessage() for r in caplog.records)


@pytest.mark.django_db
def test_failed_refund_leaves_booking_confirmed(confirmed, driver):
    gateway = Mock()
    gateway.refund.side_effect = PaymentGatewayError("charge already refunded", status_code=400)

    with pytest.raises(PaymentGatewayError):
        CancelBookingHandler(gateway=gateway).handle(
            CancelBookingCommand(booking_id=confirmed.pk, cancelled_by=driver.pk, now=_now())
        )

    confirmed.refresh_from_db()
    assert confirmed.state is BookingState.CONFIRMED


@pytest.mark.django_db
def test_stranger_cannot_cancel(pending, stranger):
    with pytest.raises(BookingNotFound):
        CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=pending.pk, cancelled_by=stranger.pk, now=_now())
        )


@pytest.mark.django_db
def test_cancelled_booking_cannot_be_cancelled_again(driveway, make_booking, driver):
    booking = make_booking(driveway, start=START, status="cancelled", payment_status="refunded")

    with pytest.raises(IllegalStateTransition):
        CancelBookingHandler().handle(
            CancelBookingCommand(booking_id=booking.pk, cancelled_by=driver.pk, now=_now())
        )


@pytest.mark.django_db
def test_unknown_booking_is_not_found(db):
    with pytest.raises(BookingNotFound):
        ExpireBookingHandler().handle(ExpireBookingCommand(booking_id=999999, now=_now()))


# ---------------------------------------------------------------------------
# Time-driven transitions
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_hold_expires_only_after_deadline(pending):
    with pytest.raises(TransitionNotDue):
        ExpireBookingHandler().handle(ExpireBookingCommand(booking_id=pending.pk, now=_now()))
    pending.refresh_from_db()
    assert pending.state is BookingState.PENDING

    ExpireBookingHandler().handle(ExpireBookingCommand(booking_id=pending.pk, now=pending.expires_at))

    pending.refresh_from_db()
    assert pending.state is BookingState.EXPIRED


@pytest.mark.django_db
def test_paid_booking_never_expires(confirmed, caplog):
    with caplog.at_level(logging.INFO, logger="apps.bookings"):
        result = ExpireBookingHandler().handle(
            ExpireBookingCommand(booking_id=confirmed.pk, now=confirmed.expires_at + timedelta(hours=1))
        )

    assert result is None
    confirmed.refresh_from_db()
    assert confirmed.state is BookingState.CONFIRMED
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.django_db
def test_booking_completes_after_window(confirmed):
    with pytest.raises(TransitionNotDue):
        CompleteBookingHandler().handle(CompleteBookingCommand(booking_id=confirmed.pk, now=confirmed.start_time))

    booking = CompleteBookingHandler().handle(
        CompleteBookingCommand(booking_id=confirmed.pk, now=confirmed.end_time)
    )

    booking.refresh_from_db()
    assert booking.state is BookingState.COMPLETED
    assert booking.completed_at == confirmed.end_time


@pytest.mark.django_db
def test_pending_booking_cannot_complete(pending):
    with pytest.raises(IllegalStateTransition):
        CompleteBookingHandler().handle(CompleteBookingCommand(booking_id=pending.pk, now=pending.end_time))


@pytest.mark.django_db
def test_intent_reuse_returns_gateway_lookup(pending, driver):
    existing = PaymentIntent("pi_existing", "secret", "requires_payment_method", 2000, "USD")
    gateway = Mock()
    gateway.retrieve_payment_intent.return_value = existing
    pending.payment_intent_ref = "pi_existing"
    pending.save()

    _, intent = StartPaymentHandler(gateway=gateway).handle(
        StartPaymentCommand(booking_id=pending.pk, driver_id=driver.pk, now=_now())
    )

    assert intent is existing
    gateway.create_payment_intent.assert_not_called()
