"""Integration tests for booking API endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.driveways.models import Driveway
from apps.users.models import User

# Monday 14:00 UTC, a neutral pricing hour
START = datetime(2030, 1, 7, 14, 0, tzinfo=timezone.utc)


class BookingAPITests(APITestCase):
    """Covers creation, conflicts, visibility and cancellation of bookings."""

    def setUp(self) -> None:
        self.driver = User.objects.create_user(
            email="driver@example.com",
            phone="+15550000002",
            password="DriverPass123",
            role=User.RoleChoices.DRIVER,
        )
        self.owner = User.objects.create_user(
            email="owner@example.com",
            phone="+15550000003",
            password="OwnerPass123",
            role=User.RoleChoices.OWNER,
        )
        self.driveway = Driveway.objects.create(
            owner=self.owner,
            title="Maple Avenue driveway",
            address="7 Maple Avenue",
            base_price_per_hour=Decimal("10.00"),
            capacity=1,
        )
        self.client.force_authenticate(self.driver)
        self.list_url = reverse("booking-list")

    def _payload(self, start: datetime, end: datetime) -> dict:
        return {
            "driveway": self.driveway.id,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "vehicle_info": {"plate": "XYZ789", "color": "blue"},
        }

    def test_driver_can_create_booking(self) -> None:
        response = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["payment_status"], "pending")
        self.assertEqual(Decimal(response.data["total_price"]), Decimal("20.00"))
        booking = Booking.objects.get()
        self.assertEqual(booking.driver, self.driver)
        self.assertEqual(booking.vehicle_info["plate"], "XYZ789")

    def test_prevent_double_booking_on_overlap(self) -> None:
        first = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)

        conflict = self.client.post(
            self.list_url,
            self._payload(START + timedelta(hours=1), START + timedelta(hours=3)),
            format="json",
        )

        self.assertEqual(conflict.status_code, status.HTTP_409_CONFLICT, conflict.data)
        self.assertFalse(conflict.data["success"])
        self.assertEqual(conflict.data["error"]["code"], "slot_unavailable")
        self.assertEqual(Booking.objects.count(), 1)

    def test_back_to_back_bookings_are_allowed(self) -> None:
        first = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        second = self.client.post(
            self.list_url,
            self._payload(START + timedelta(hours=2), START + timedelta(hours=4)),
            format="json",
        )

        self.assertEqual(first.status_code, status.HTTP_201_CREATED, first.data)
        self.assertEqual(second.status_code, status.HTTP_201_CREATED, second.data)
        self.assertEqual(Booking.objects.count(), 2)

    def test_owner_cannot_book_own_driveway(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, response.data)
        self.assertEqual(response.data["error"]["code"], "self_booking_not_allowed")

    def test_invalid_windows_are_rejected_with_reason(self) -> None:
        inverted = self.client.post(self.list_url, self._payload(START, START - timedelta(hours=1)), format="json")
        too_short = self.client.post(self.list_url, self._payload(START, START + timedelta(minutes=5)), format="json")
        past = self.client.post(
            self.list_url,
            self._payload(datetime(2020, 1, 1, 10, tzinfo=timezone.utc), datetime(2020, 1, 1, 12, tzinfo=timezone.utc)),
            format="json",
        )

        self.assertEqual(inverted.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(inverted.data["error"]["code"], "invalid_window")
        self.assertEqual(too_short.data["error"]["code"], "too_short")
        self.assertEqual(past.data["error"]["code"], "in_the_past")
        self.assertEqual(Booking.objects.count(), 0)

    def test_window_longer_than_policy_limit_is_rejected(self) -> None:
        response = self.client.post(self.list_url, self._payload(START, START + timedelta(days=8)), format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, response.data)
        self.assertEqual(response.data["error"]["code"], "validation_error")
        self.assertIn("end_time", response.data["error"]["details"])

    def test_unknown_driveway_is_not_found(self) -> None:
        payload = self._payload(START, START + timedelta(hours=1))
        payload["driveway"] = 987654

        response = self.client.post(self.list_url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND, response.data)

    def test_anonymous_user_cannot_book(self) -> None:
        self.client.force_authenticate(None)

        response = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_driver_and_owner_both_see_booking(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        booking_id = created.data["id"]
        outsider = User.objects.create_user(email="outsider@example.com", password="OutsiderPass1")

        self.assertEqual(len(self.client.get(self.list_url).data), 1)

        self.client.force_authenticate(self.owner)
        owner_view = self.client.get(self.list_url, {"role": "owner"})
        self.assertEqual([b["id"] for b in owner_view.data], [booking_id])
        self.assertEqual(self.client.get(self.list_url, {"role": "driver"}).data, [])

        self.client.force_authenticate(outsider)
        self.assertEqual(self.client.get(self.list_url).data, [])
        detail = self.client.get(reverse("booking-detail", args=[booking_id]))
        self.assertEqual(detail.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_filters_by_status(self) -> None:
        self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        pending = self.client.get(self.list_url, {"status": "pending"})
        confirmed = self.client.get(self.list_url, {"status": "confirmed"})

        self.assertEqual(len(pending.data), 1)
        self.assertEqual(confirmed.data, [])

    def test_driver_can_cancel_booking(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        cancel_url = reverse("booking-cancel", args=[created.data["id"]])

        response = self.client.post(cancel_url, {"reason": "Plans changed"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data, {"status": "cancelled", "payment_status": "pending"})
        booking = Booking.objects.get()
        self.assertEqual(booking.cancellation_source, Booking.CancellationSource.DRIVER)
        self.assertEqual(booking.cancellation_reason, "Plans changed")

    def test_cancel_accepts_put_and_frees_the_slot(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        response = self.client.put(reverse("booking-cancel", args=[created.data["id"]]), {}, format="json")
        again = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(again.status_code, status.HTTP_201_CREATED, again.data)

    def test_second_cancel_is_conflict(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        cancel_url = reverse("booking-cancel", args=[created.data["id"]])
        self.client.post(cancel_url, {}, format="json")

        response = self.client.post(cancel_url, {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)
        self.assertEqual(response.data["error"]["message"], "Booking could not be updated.")

    def test_owner_can_cancel_booking_on_their_driveway(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        self.client.force_authenticate(self.owner)

        response = self.client.post(reverse("booking-cancel", args=[created.data["id"]]), {}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(Booking.objects.get().cancellation_source, Booking.CancellationSource.OWNER)

    def test_status_fields_are_read_only(self) -> None:
        created = self.client.post(self.list_url, self._payload(START, START + timedelta(hours=2)), format="json")
        detail_url = reverse("booking-detail", args=[created.data["id"]])

        response = self.client.patch(detail_url, {"status": "confirmed"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertEqual(Booking.objects.get().status, Booking.Status.PENDING)
