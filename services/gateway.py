"""Stripe Checkout boundary for the payment reconciler."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

import stripe
from flask import current_app
from werkzeug.exceptions import BadRequest

from models.payment import (
    PAYMENT_CANCELLED,
    PAYMENT_COMPLETE,
    PAYMENT_EXPIRED,
    PAYMENT_FAILED,
    PAYMENT_PROCESSING,
    Payment,
)

from .errors import GatewayError

logger = logging.getLogger(__name__)

_INTENT_STATUSES = {
    "succeeded": PAYMENT_COMPLETE,
    "processing": PAYMENT_PROCESSING,
    "requires_action": PAYMENT_PROCESSING,
    "requires_confirmation": PAYMENT_PROCESSING,
    "requires_capture": PAYMENT_PROCESSING,
    "canceled": PAYMENT_CANCELLED,
}


@dataclass
class GatewayStatus:
    """Authoritative status reported by the gateway for one payment."""

    status: str | None
    raw_status: str | None = None
    gateway_payment_id: str | None = None
    failure_reason: str | None = None
    details: dict = field(default_factory=dict)


def _init_gateway() -> str:
    """Configure Stripe with the API key from configuration."""

    api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not api_key:
        raise GatewayError("Stripe secret key is not configured.")
    stripe.api_key = api_key
    return api_key


def _minor_units(amount) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def _with_query(url: str, **params) -> str:
    separator = "&" if "?" in url else "?"
    query = "&".join(f"{key}={value}" for key, value in params.items())
    return f"{url}{separator}{query}"


def create_checkout_session(
    payment: Payment,
    *,
    currency: str,
    customer_email: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
):
    """Open a Checkout Session for ``payment`` and return the Stripe object."""

    _init_gateway()
    success_url = success_url or current_app.config.get("PAYMENT_SUCCESS_URL")
    cancel_url = cancel_url or current_app.config.get("PAYMENT_CANCEL_URL")
    if not success_url or not cancel_url:
        raise GatewayError("Payment success and cancel URLs must be configured.")

    application_id = str(payment.application_id)
    params = {
        "mode": "payment",
        "line_items": [
            {
                "price_data": {
                    "currency": currency,
                    "unit_amount": _minor_units(payment.amount),
                    "product_data": {"name": "Health Card Application Fee"},
                },
                "quantity": 1,
            },
            {
                "price_data": {
                    "currency": currency,
                    "unit_amount": _minor_units(payment.service_fee),
                    "product_data": {"name": "Service Fee"},
                },
                "quantity": 1,
            },
        ],
        "client_reference_id": payment.reference_number,
        "success_url": _with_query(success_url, payment_id=payment.id, status="success"),
        "cancel_url": _with_query(cancel_url, payment_id=payment.id, status="cancelled"),
        "metadata": {"application_id": application_id, "payment_id": str(payment.id)},
        "payment_intent_data": {
            "metadata": {"application_id": application_id, "payment_id": str(payment.id)}
        },
    }
    if customer_email:
        params["customer_email"] = customer_email

    try:
        return stripe.checkout.Session.create(**params)
    except stripe.StripeError as exc:
        logger.warning("Checkout creation failed for payment %s: %s", payment.id, exc)
        raise GatewayError(str(exc)) from exc


def _status_from_session(session) -> GatewayStatus:
    payment_status = session.get("payment_status")
    session_status = session.get("status")
    if payment_status in ("paid", "no_payment_required"):
        status = PAYMENT_COMPLETE
    elif session_status == "expired":
        status = PAYMENT_EXPIRED
    else:
        status = PAYMENT_PROCESSING
    intent = session.get("payment_intent")
    if isinstance(intent, dict):
        intent = intent.get("id")
    return GatewayStatus(
        status=status,
        raw_status=f"{session_status}/{payment_status}",
        gateway_payment_id=intent,
        details={"session_id": session.get("id"), "amount_total": session.get("amount_total")},
    )


def _status_from_intent(intent) -> GatewayStatus:
    raw_status = intent.get("status")
    status = _INTENT_STATUSES.get(raw_status)
    failure_reason = None
    last_error = intent.get("last_payment_error")
    if raw_status == "requires_payment_method":
        # A failed charge returns the intent to requires_payment_method.
        if last_error:
            status = PAYMENT_FAILED
            failure_reason = last_error.get("message")
        else:
            status = PAYMENT_PROCESSING
    return GatewayStatus(
        status=status,
        raw_status=raw_status,
        gateway_payment_id=intent.get("id"),
        failure_reason=failure_reason,
        details={"amount": intent.get("amount"), "currency": intent.get("currency")},
    )


def fetch_payment_status(payment: Payment) -> GatewayStatus:
    """Ask Stripe for the authoritative status of ``payment``.

    Prefers the PaymentIntent when one is known and falls back to the
    Checkout Session. Raises ``GatewayError`` without touching the payment.
    """

    if not payment.gateway_reference:
        raise GatewayError("Payment has no gateway reference to synchronise.")
    _init_gateway()
    try:
        if payment.gateway_payment_id:
            intent = stripe.PaymentIntent.retrieve(payment.gateway_payment_id)
            return _status_from_intent(intent)
        session = stripe.checkout.Session.retrieve(payment.gateway_checkout_id)
        return _status_from_session(session)
    except stripe.StripeError as exc:
        logger.warning("Status lookup failed for payment %s: %s", payment.id, exc)
        raise GatewayError(str(exc)) from exc


def construct_webhook_event(payload: bytes, signature: str | None):
    """Verify a webhook delivery and return the decoded event."""

    webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        raise GatewayError("Stripe webhook secret is not configured.")
    try:
        return stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Rejected webhook delivery: %s", exc)
        raise BadRequest("Invalid webhook signature.") from exc


def refund_reason(charge) -> str | None:
    refunds = (charge.get("refunds") or {}).get("data") or []
    if refunds:
        return refunds[0].get("reason")
    return None


def failure_message(data_object) -> str | None:
    last_error = data_object.get("last_payment_error") or {}
    return last_error.get("message")

