"""Tests for the payment endpoints and the gateway webhook."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import Mock, patch

from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.driveways.models import Driveway
from apps.payments.gateway import PaymentIntent, sign_payload
from apps.users.models import User

START = datetime(2030, 1, 7, 14, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test"
SIGNED_GATEWAY = {"API_KEY": "", "WEBHOOK_SECRET": WEBHOOK_SECRET, "CURRENCY": "USD", "TIMEOUT": 1.0}


class PaymentTestCase(APITestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(
            email="owner-payments@example.com",
            phone="+15550000020",
            password="OwnerPass123",
            role=User.RoleChoices.OWNER,
        )
        self.driver = User.objects.create_user(
            email="driver-payments@example.com",
            phone="+15550000021",
            password="DriverPass123",
        )
        self.driveway = Driveway.objects.create(
            owner=self.owner,
            title="Cedar Court driveway",
            address="5 Cedar Court",
            base_price_per_hour=Decimal("10.00"),
        )
        self.booking = self._booking()

    def _booking(self, **fields) -> Booking:
        fields.setdefault("expires_at", datetime.now(timezone.utc) + timedelta(minutes=15))
        return Booking.objects.create(
            driveway=self.driveway,
            driver=self.driver,
            start_time=START,
            end_time=START + timedelta(hours=2),
            total_price=Decimal("20.00"),
            **fields,
        )


class PaymentIntentAPITests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client.force_authenticate(self.driver)
        self.url = reverse("payment-create-intent")

    def test_creates_intent_for_pending_booking(self) -> None:
        response = self.client.post(self.url, {"booking_id": self.booking.id}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["amount"], "20.00")
        self.assertEqual(response.data["currency"], "USD")
        self.assertTrue(response.data["client_secret"])
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_intent_ref, response.data["payment_intent_ref"])

    def test_repeated_requests_reuse_the_intent(self) -> None:
        first = self.client.post(self.url, {"booking_id": self.booking.id}, format="json")
        second = self.client.post(self.url, {"booking_id": self.booking.id}, format="json")

        self.assertEqual(first.data["payment_intent_ref"], second.data["payment_intent_ref"])

    def test_other_users_booking_is_not_found(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(self.url, {"booking_id": self.booking.id}, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_confirmed_booking_cannot_be_paid_again(self) -> None:
        paid = self._booking(status="confirmed", payment_status="paid", payment_intent_ref="pi_paid")

        response = self.client.post(self.url, {"booking_id": paid.id}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_expired_hold_is_closed_instead_of_charged(self) -> None:
        overdue = self._booking(expires_at=datetime.now(timezone.utc) - timedelta(minutes=5))

        response = self.client.post(self.url, {"booking_id": overdue.id}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "hold_expired")
        overdue.refresh_from_db()
        self.assertEqual(overdue.status, Booking.Status.EXPIRED)
        self.assertEqual(overdue.payment_intent_ref, "")

    def test_anonymous_request_is_rejected(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.post(self.url, {"booking_id": self.booking.id}, format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class VerifyPaymentAPITests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.booking.payment_intent_ref = "pi_verify"
        self.booking.save()
        self.client.force_authenticate(self.driver)
        self.url = reverse("payment-verify")

    def _verify(self, ref: str = "pi_verify"):
        return self.client.post(
            self.url, {"booking_id": self.booking.id, "payment_intent_ref": ref}, format="json"
        )

    def _gateway_returning(self, intent_status: str, amount: int = 2000) -> Mock:
        gateway = Mock()
        gateway.retrieve_payment_intent.return_value = PaymentIntent(
            ref="pi_verify", client_secret="", status=intent_status, amount=amount, currency="USD"
        )
        return gateway

    def test_succeeded_intent_confirms_booking(self) -> None:
        response = self._verify()

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "confirmed")
        self.assertEqual(response.data["payment_status"], "paid")
        self.booking.refresh_from_db()
        self.assertIsNotNone(self.booking.confirmed_at)

    def test_failed_intent_cancels_booking(self) -> None:
        with patch("apps.payments.views.get_gateway", return_value=self._gateway_returning("payment_failed")):
            response = self._verify()

        self.assertEqual(response.data["status"], "cancelled")
        self.assertEqual(response.data["payment_status"], "failed")
        self.assertEqual(response.data["intent_status"], "payment_failed")

    def test_unfinished_intent_leaves_booking_pending(self) -> None:
        with patch("apps.payments.views.get_gateway", return_value=self._gateway_returning("processing")):
            response = self._verify()

        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["payment_status"], "pending")

    def test_amount_mismatch_is_rejected(self) -> None:
        with patch("apps.payments.views.get_gateway", return_value=self._gateway_returning("succeeded", 999)):
            response = self._verify()

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "payment_mismatch")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_foreign_intent_ref_is_rejected(self) -> None:
        response = self._verify("pi_someone_else")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "payment_mismatch")


@override_settings(PAYMENT_GATEWAY=SIGNED_GATEWAY)
class PaymentWebhookTests(PaymentTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.booking.payment_intent_ref = "pi_hook"
        self.booking.save()
        self.url = reverse("payment-webhook")

    def _deliver(self, payload, *, secret: str = WEBHOOK_SECRET):
        body = json.dumps(payload).encode() if not isinstance(payload, bytes) else payload
        return self.client.generic(
            "POST",
            self.url,
            body,
            content_type="application/json",
            HTTP_X_PARKWAY_SIGNATURE=sign_payload(body, secret),
        )

    def test_succeeded_event_confirms_booking(self) -> None:
        response = self._deliver({"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.json(),
            {
                "status": "processed",
                "booking_id": self.booking.id,
                "booking_status": "confirmed",
                "payment_status": "paid",
            },
        )

    def test_redelivered_success_is_idempotent(self) -> None:
        payload = {"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}}
        self._deliver(payload)

        response = self._deliver(payload)

        self.assertEqual(response.json()["status"], "processed")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CONFIRMED)

    def test_failed_event_records_reason(self) -> None:
        response = self._deliver(
            {
                "type": "payment_intent.payment_failed",
                "data": {"id": "pi_hook", "failure_message": "Insufficient funds"},
            }
        )

        self.assertEqual(response.json()["booking_status"], "cancelled")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, Booking.PaymentStatus.FAILED)
        self.assertEqual(self.booking.payment_failure_reason, "Insufficient funds")

    def test_bad_signature_is_forbidden(self) -> None:
        response = self._deliver(
            {"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}}, secret="wrong"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_invalid_json_is_bad_request(self) -> None:
        response = self._deliver(b"not json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_intent_id_is_bad_request(self) -> None:
        response = self._deliver({"type": "payment_intent.succeeded", "data": {}})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unhandled_event_type_is_ignored(self) -> None:
        response = self._deliver({"type": "charge.refunded", "data": {"id": "pi_hook"}})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], "ignored")

    def test_unknown_intent_is_not_found(self) -> None:
        response = self._deliver({"type": "payment_intent.succeeded", "data": {"id": "pi_unknown"}})

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_success_after_expiry_is_acknowledged_without_confirming(self) -> None:
        self.booking.status = Booking.Status.EXPIRED
        self.booking.payment_status = Booking.PaymentStatus.FAILED
        self.booking.save()

        with self.assertLogs("apps.bookings", level="WARNING") as logs:
            response = self._deliver({"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], "ignored")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.EXPIRED)
        self.assertTrue(self.booking.refund_ref.startswith("re_emulated_"))
        self.assertNotIn("ERROR", [record.levelname for record in logs.records])

    def test_redelivered_late_success_is_refunded_once(self) -> None:
        self.booking.status = Booking.Status.EXPIRED
        self.booking.save()
        payload = {"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}}
        self._deliver(payload)
        self.booking.refresh_from_db()
        first_refund = self.booking.refund_ref

        response = self._deliver(payload)

        self.assertEqual(response.json()["status"], "ignored")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.refund_ref, first_refund)

    @override_settings(PAYMENT_GATEWAY={**SIGNED_GATEWAY, "API_KEY": "sk_live_abc", "WEBHOOK_SECRET": ""})
    def test_unsigned_event_is_forbidden_for_live_gateway(self) -> None:
        body = json.dumps({"type": "payment_intent.succeeded", "data": {"id": "pi_hook"}}).encode()

        response = self.client.generic("POST", self.url, body, content_type="application/json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_get_is_a_health_check(self) -> None:
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
