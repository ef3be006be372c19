"""
DRF exception handler

Maps booking engine errors to HTTP responses and wraps every error
response in one envelope:

    {"success": false, "error": {"code": ..., "message": ...}}
"""

from __future__ import annotations

import logging
from typing import Optional

from django.core.exceptions import ValidationError as DjangoValidationError  # type: ignore
from rest_framework import status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import exception_handler  # type: ignore

from apps.bookings.domain.exceptions import (
    BookingError,
    BookingNotFound,
    DrivewayNotFound,
    HoldExpired,
    IllegalStateTransition,
    InvalidBookingWindow,
    PaymentMismatch,
    SelfBookingNotAllowed,
    SlotUnavailable,
    TransitionNotDue,
)
from apps.payments.gateway import PaymentGatewayError
from shared.application.retry import TransientNetworkError

logger = logging.getLogger(__name__)


BOOKING_ERROR_STATUS = {
    InvalidBookingWindow: status.HTTP_400_BAD_REQUEST,
    PaymentMismatch: status.HTTP_400_BAD_REQUEST,
    SelfBookingNotAllowed: status.HTTP_403_FORBIDDEN,
    BookingNotFound: status.HTTP_404_NOT_FOUND,
    DrivewayNotFound: status.HTTP_404_NOT_FOUND,
    SlotUnavailable: status.HTTP_409_CONFLICT,
    HoldExpired: status.HTTP_409_CONFLICT,
    IllegalStateTransition: status.HTTP_409_CONFLICT,
    TransitionNotDue: status.HTTP_409_CONFLICT,
}


def _envelope(code: str, message: str, status_code: int, details=None) -> Response:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return Response({"success": False, "error": error}, status=status_code)


def _booking_error_response(exc: BookingError) -> Response:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in BOOKING_ERROR_STATUS.items():
        if isinstance(exc, error_type):
            status_code = mapped
            break

    if isinstance(exc, InvalidBookingWindow):
        return _envelope(exc.reason.value, exc.message, status_code)
    if isinstance(exc, IllegalStateTransition):
        # The detailed message names internal states; clients get the generic one
        return _envelope(exc.code, exc.default_message, status_code)
    return _envelope(exc.code, exc.message, status_code)


def _message_from(data) -> str:
    if isinstance(data, dict):
        detail = data.get("detail")
        if detail is not None:
            return str(detail)
        return "Validation error"
    if isinstance(data, list) and data:
        return str(data[0])
    return str(data)


def custom_exception_handler(exc, context) -> Optional[Response]:
    """
    Exception handler registered in REST_FRAMEWORK['EXCEPTION_HANDLER'].

    Unknown exceptions return None so Django reports them as a 500.
    """
    if isinstance(exc, BookingError):
        return _booking_error_response(exc)

    if isinstance(exc, TransientNetworkError):
        logger.warning(f"Upstream unavailable after retries: {exc}")
        return _envelope(
            "service_unavailable",
            "Payment service is unavailable, try again later.",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if isinstance(exc, PaymentGatewayError):
        logger.error(f"Payment gateway rejected request: {exc} (status {exc.status_code})")
        return _envelope(
            exc.code or "payment_gateway_error",
            "Payment gateway rejected the request.",
            status.HTTP_502_BAD_GATEWAY,
        )

    if isinstance(exc, DjangoValidationError):
        details = exc.message_dict if hasattr(exc, "message_dict") else {"detail": exc.messages}
        return _envelope("validation_error", "Validation error", status.HTTP_400_BAD_REQUEST, details)

    response = exception_handler(exc, context)
    if response is None:
        return None

    code = getattr(exc, "default_code", "error")
    details = None
    if isinstance(response.data, dict) and "detail" not in response.data:
        details = response.data
    elif isinstance(response.data, list):
        details = response.data
    if code == "invalid":
        code = "validation_error"

    response.data = {
        "success": False,
        "error": {"code": code, "message": _message_from(response.data)},
    }
    if details:
        response.data["error"]["details"] = details
    return response
