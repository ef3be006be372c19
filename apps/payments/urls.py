"""URL routing for payments."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import CreatePaymentIntentView, VerifyPaymentView, payment_webhook

urlpatterns = [
    path("create-payment-intent/", CreatePaymentIntentView.as_view(), name="payment-create-intent"),
    path("verify/", VerifyPaymentView.as_view(), name="payment-verify"),
    path("webhook/", payment_webhook, name="payment-webhook"),
]
