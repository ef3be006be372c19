"""
Payment gateway client

Thin ``requests`` client for the card processor: payment intents,
intent lookups and refunds. Every call goes through the retry policy;
network failures and 5xx answers surface as TransientNetworkError, any
other non-2xx answer as PaymentGatewayError on first occurrence.

Without an API key the client emulates the gateway locally, which is
what development and the test suite run against.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass

import requests
from django.conf import settings

from shared.application.retry import RetryPolicy, TransientNetworkError
from shared.domain.value_objects import Money

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Parkway-Signature"


class PaymentGatewayError(Exception):
    """The gateway rejected the request (4xx or an unusable answer)."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


@dataclass(frozen=True)
class PaymentIntent:
    ref: str
    client_secret: str
    status: str
    amount: int
    currency: str

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def failed(self) -> bool:
        return self.status in ("canceled", "payment_failed")


def _intent_from_payload(data: dict) -> PaymentIntent:
    try:
        return PaymentIntent(
            ref=data["id"],
            client_secret=data.get("client_secret", ""),
            status=data["status"],
            amount=int(data["amount"]),
            currency=str(data.get("currency", "")).upper(),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise PaymentGatewayError(f"Malformed payment intent payload: {exc}") from exc


class PaymentGatewayClient:
    """
    Payment gateway API client

    Usage:
        gateway = PaymentGatewayClient.from_settings()
        intent = gateway.create_payment_intent(Money(Decimal("12.50")), "A1B2C3D4")
    """

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://api.payments.example.com/v1/",
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        policy: RetryPolicy | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.policy = policy

    @classmethod
    def from_settings(cls, **overrides) -> "PaymentGatewayClient":
        conf = getattr(settings, "PAYMENT_GATEWAY", {})
        options = {
            "api_key": conf.get("API_KEY", ""),
            "base_url": conf.get("BASE_URL", "https://api.payments.example.com/v1/"),
            "timeout": float(conf.get("TIMEOUT", 10)),
        }
        options.update(overrides)
        return cls(**options)

    @property
    def emulated(self) -> bool:
        return not self.api_key

    # --- API -----------------------------------------------------------------

    def create_payment_intent(self, amount: Money, booking_ref: str) -> PaymentIntent:
        logger.info(f"Creating payment intent for booking {booking_ref}: {amount}")
        if self.emulated:
            logger.warning("Payment gateway emulated (no API key configured)")
            ref = f"pi_emulated_{uuid.uuid4().hex[:16]}"
            return PaymentIntent(
                ref=ref,
                client_secret=f"{ref}_secret_{secrets.token_hex(8)}",
                status="requires_payment_method",
                amount=amount.minor_units,
                currency=amount.currency,
            )

        data = self._request(
            "POST",
            "payment_intents",
            json={
                "amount": amount.minor_units,
                "currency": amount.currency.lower(),
                "metadata": {"booking_ref": booking_ref},
            },
            headers={"Idempotency-Key": f"booking-{booking_ref}"},
        )
        intent = _intent_from_payload(data)
        logger.info(f"Payment intent {intent.ref} created for booking {booking_ref}")
        return intent

    def retrieve_payment_intent(self, ref: str) -> PaymentIntent:
        if self.emulated:
            # Emulated intents are always paid once the client asks about them
            return PaymentIntent(
                ref=ref,
                client_secret=f"{ref}_secret_emulated",
                status="succeeded",
                amount=0,
                currency="",
            )
        return _intent_from_payload(self._request("GET", f"payment_intents/{ref}"))

    def refund(self, ref: str, amount: Money) -> str:
        """Refund ``amount`` of the intent; returns the gateway's refund id."""
        logger.info(f"Refunding {amount} on payment intent {ref}")
        if self.emulated:
            return f"re_emulated_{uuid.uuid4().hex[:16]}"

        data = self._request(
            "POST",
            "refunds",
            json={"payment_intent": ref, "amount": amount.minor_units},
            headers={"Idempotency-Key": f"refund-{ref}"},
        )
        refund_id = data.get("id")
        if not refund_id:
            raise PaymentGatewayError("Refund response carried no id")
        return refund_id

    # --- Transport -------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> dict:
        policy = self.policy or RetryPolicy.from_settings()
        return policy.call(self._send, method, path, **kwargs)

    def _send(self, method: str, path: str, *, headers: dict | None = None, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        request_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        request_headers.update(headers or {})

        try:
            response = self.session.request(
                method, url, headers=request_headers, timeout=self.timeout, **kwargs
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientNetworkError(f"{method} {path}: {exc}") from exc

        if response.status_code >= 500:
            raise TransientNetworkError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            message = error.get("message") or f"{method} {path} returned {response.status_code}"
            logger.error(f"Payment gateway rejected {method} {path}: {response.status_code} {message}")
            raise PaymentGatewayError(message, status_code=response.status_code, code=error.get("code", ""))

        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError(f"{method} {path} returned invalid JSON") from exc


def get_gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient.from_settings()


def sign_payload(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str | None = None) -> bool:
    """
    HMAC-SHA256 of the raw body, hex encoded.

    Unsigned payloads are accepted only while the gateway is emulated
    (no API key) and no webhook secret is configured.
    """
    conf = getattr(settings, "PAYMENT_GATEWAY", {})
    if secret is None:
        secret = conf.get("WEBHOOK_SECRET", "")
    if not secret:
        return not conf.get("API_KEY")
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(payload, secret), signature)
