"""Payment endpoints.

Gateway results never touch a booking directly: they are turned into
ConfirmPayment / FailPayment commands for the booking state machine.
"""

from __future__ import annotations

import json
import logging

from django.http import HttpResponse, JsonResponse  # type: ignore
from django.utils import timezone  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from rest_framework import serializers, status  # type: ignore
from rest_framework.permissions import IsAuthenticated  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.application.command_handlers import (
    ConfirmPaymentCommand,
    FailPaymentCommand,
    StartPaymentCommand,
)
from apps.bookings.domain.exceptions import BookingNotFound, IllegalStateTransition, PaymentMismatch
from apps.bookings.models import Booking
from shared.application.message_bus import message_bus
from shared.domain.value_objects import Money

from .gateway import SIGNATURE_HEADER, get_gateway, verify_webhook_signature

logger = logging.getLogger(__name__)

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"


class PaymentIntentRequestSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)


class PaymentVerifySerializer(serializers.Serializer):
    booking_id = serializers.IntegerField(min_value=1)
    payment_intent_ref = serializers.CharField(max_length=255)


class CreatePaymentIntentView(APIView):
    """Create (or reuse) the payment intent for the caller's pending booking."""

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PaymentIntentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking, intent = message_bus.handle_command(
            StartPaymentCommand(
                booking_id=serializer.validated_data["booking_id"],
                driver_id=request.user.id,
                now=timezone.now(),
            )
        )
        return Response(
            {
                "booking_id": booking.pk,
                "payment_intent_ref": intent.ref,
                "client_secret": intent.client_secret,
                "amount": str(booking.total_price),
                "currency": booking.currency,
            },
            status=status.HTTP_200_OK,
        )


class VerifyPaymentView(APIView):
    """
    Synchronous confirmation after the client-side payment step.

    The intent is looked up at the gateway; the client's word alone never
    confirms a booking.
    """

    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking_id = serializer.validated_data["booking_id"]
        ref = serializer.validated_data["payment_intent_ref"]

        try:
            booking = Booking.objects.get(pk=booking_id, driver=request.user)
        except Booking.DoesNotExist:
            raise BookingNotFound() from None
        if booking.payment_intent_ref != ref:
            raise PaymentMismatch()

        intent = get_gateway().retrieve_payment_intent(ref)
        if intent.amount and intent.amount != Money(booking.total_price, booking.currency).minor_units:
            logger.error(
                f"Payment intent {ref} amount {intent.amount} does not match booking {booking.booking_code}"
            )
            raise PaymentMismatch("Payment amount does not match the booking.")

        now = timezone.now()
        if intent.succeeded:
            booking = message_bus.handle_command(
                ConfirmPaymentCommand(booking_id=booking.pk, payment_intent_ref=ref, now=now)
            )
        elif intent.failed:
            booking = message_bus.handle_command(
                FailPaymentCommand(
                    booking_id=booking.pk,
                    now=now,
                    reason=f"Payment {intent.status}",
                    payment_intent_ref=ref,
                )
            )

        return Response(
            {
                "booking_id": booking.pk,
                "status": booking.status,
                "payment_status": booking.payment_status,
                "intent_status": intent.status,
            },
            status=status.HTTP_200_OK,
        )


@csrf_exempt
def payment_webhook(request):
    """
    Gateway callback for payment intent results.

    Body: {"type": "payment_intent.succeeded" | "payment_intent.payment_failed",
           "data": {"id": <intent ref>, "failure_message": <str, optional>}}
    """
    if request.method != "POST":
        return HttpResponse("Payment webhook endpoint", status=200)

    signature = request.headers.get(SIGNATURE_HEADER)
    if not verify_webhook_signature(request.body, signature):
        logger.error("Payment webhook rejected: invalid signature")
        return JsonResponse({"status": "error", "message": "Invalid signature"}, status=403)

    try:
        payload = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Payment webhook rejected: invalid JSON")
        return JsonResponse({"status": "error", "message": "Invalid JSON"}, status=400)

    event_type = payload.get("type") if isinstance(payload, dict) else None
    data = payload.get("data") if isinstance(payload, dict) else None
    ref = data.get("id") if isinstance(data, dict) else None
    if not event_type or not ref:
        return JsonResponse({"status": "error", "message": "type and data.id are required"}, status=400)

    logger.info(f"Payment webhook received: {event_type} for {ref}")
    if event_type not in (EVENT_SUCCEEDED, EVENT_FAILED):
        return JsonResponse({"status": "ignored", "message": "Event type not handled"}, status=200)

    booking_id = Booking.objects.filter(payment_intent_ref=ref).values_list("pk", flat=True).first()
    if booking_id is None:
        logger.error(f"Payment webhook: no booking for payment intent {ref}")
        return JsonResponse({"status": "error", "message": "Booking not found"}, status=404)

    now = timezone.now()
    if event_type == EVENT_SUCCEEDED:
        command = ConfirmPaymentCommand(booking_id=booking_id, payment_intent_ref=ref, now=now)
    else:
        command = FailPaymentCommand(
            booking_id=booking_id,
            now=now,
            reason=str(data.get("failure_message") or "Payment failed"),
            payment_intent_ref=ref,
        )

    try:
        booking = message_bus.handle_command(command)
    except IllegalStateTransition:
        # The booking already left PENDING and any late charge was refunded; the gateway
        # must not keep retrying this delivery
        return JsonResponse(
            {"status": "ignored", "message": "Booking can no longer be updated", "booking_id": booking_id},
            status=200,
        )

    return JsonResponse(
        {
            "status": "processed",
            "booking_id": booking.pk,
            "booking_status": booking.status,
            "payment_status": booking.payment_status,
        },
        status=200,
    )
