"""Payment records and reconciliation with the Stripe gateway.

Local payment state only changes after a successful reconciliation step:
gateway lookups happen first and raise ``GatewayError`` before any row is
touched. Every transition appends a ``PaymentLog`` audit row.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from models import db, utcnow
from models.application import (
    PAYABLE_STATUSES,
    STATUS_FOR_ORIENTATION,
    STATUS_FOR_PAYMENT_VALIDATION,
    STATUS_PAYMENT_REJECTED,
    STATUS_SUBMITTED,
    STATUS_UNDER_REVIEW,
    Application,
)
from models.payment import (
    METHOD_ONLINE_CHECKOUT,
    PAYMENT_CANCELLED,
    PAYMENT_COMPLETE,
    PAYMENT_EXPIRED,
    PAYMENT_FAILED,
    PAYMENT_METHODS,
    PAYMENT_PENDING,
    PAYMENT_PROCESSING,
    PAYMENT_REFUNDED,
    PAYMENT_REJECTION_CATEGORIES,
    Payment,
    PaymentLog,
    PaymentRejection,
)
from models.user import User

from . import gateway, notifications
from .access import (
    get_payment,
    load_owned_application,
    load_reviewable_application,
    load_visible_application,
    require_reviewer,
)
from .errors import GatewayError, InvalidState, ValidationFailed
from .settings import WorkflowSettings, get_settings

logger = logging.getLogger(__name__)

RETURN_STATUSES = ("success", "failed", "cancelled")

# Current payments in these statuses may be replaced by a new attempt.
REPLACEABLE_STATUSES = (PAYMENT_FAILED, PAYMENT_CANCELLED, PAYMENT_EXPIRED)

WEBHOOK_EVENTS = {
    "checkout.session.completed": PAYMENT_COMPLETE,
    "checkout.session.async_payment_succeeded": PAYMENT_COMPLETE,
    "checkout.session.async_payment_failed": PAYMENT_FAILED,
    "checkout.session.expired": PAYMENT_EXPIRED,
    "payment_intent.payment_failed": PAYMENT_FAILED,
    "charge.refunded": PAYMENT_REFUNDED,
}


def _log(
    payment: Payment | None,
    event_type: str,
    *,
    error_message: str | None = None,
    details: Mapping | None = None,
    gateway_payment_id: str | None = None,
    gateway_checkout_id: str | None = None,
    currency: str | None = None,
    now=None,
) -> PaymentLog:
    entry = PaymentLog(
        payment_id=payment.id if payment is not None else None,
        event_type=event_type,
        gateway_payment_id=gateway_payment_id
        or (payment.gateway_payment_id if payment is not None else None),
        gateway_checkout_id=gateway_checkout_id
        or (payment.gateway_checkout_id if payment is not None else None),
        amount=payment.net_amount if payment is not None else None,
        currency=currency,
        error_message=error_message,
        details=dict(details) if details else None,
        timestamp=now or utcnow(),
    )
    db.session.add(entry)
    return entry


def _decimal(value, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationFailed(f"{name} must be a number.") from exc


def validate_amounts(amount, service_fee, net_amount) -> tuple[Decimal, Decimal, Decimal]:
    amount = _decimal(amount, "amount")
    service_fee = _decimal(service_fee, "service_fee")
    net_amount = _decimal(net_amount, "net_amount")
    if amount <= 0 or service_fee < 0 or net_amount <= 0:
        raise ValidationFailed("Invalid payment amounts.")
    if net_amount != amount + service_fee:
        raise ValidationFailed("Net amount calculation is incorrect.")
    return amount, service_fee, net_amount


def current_payment(application_id: int) -> Payment | None:
    return (
        Payment.query.filter_by(application_id=application_id, is_current=True)
        .order_by(Payment.id.desc())
        .first()
    )


def new_payment(
    application: Application,
    *,
    amount,
    service_fee,
    net_amount,
    method: str,
    reference_number: str,
    status: str = PAYMENT_PENDING,
    now=None,
) -> Payment:
    """Validate the amounts and insert a payment as the application's current one."""

    amount, service_fee, net_amount = validate_amounts(amount, service_fee, net_amount)
    if method not in PAYMENT_METHODS:
        raise ValidationFailed(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}.")
    if not reference_number:
        raise ValidationFailed("reference_number is required.")
    now = now or utcnow()
    payment = Payment(
        application_id=application.id,
        amount=amount,
        service_fee=service_fee,
        net_amount=net_amount,
        method=method,
        reference_number=reference_number,
        status=status,
        is_current=True,
        created_at=now,
        updated_at=now,
    )
    db.session.add(payment)
    db.session.flush()
    _log(payment, "payment_created", details={"method": method, "status": status}, now=now)
    return payment


def _supersede(previous: Payment, replacement: Payment, now) -> PaymentRejection | None:
    """Retire ``previous`` in favour of ``replacement``.

    Returns the rejection row patched as replaced, if the previous payment
    had been rejected by an admin.
    """

    previous.is_current = False
    previous.superseded_by_id = replacement.id
    _log(previous, "payment_superseded", details={"replacement_id": replacement.id}, now=now)

    rejection = None
    if previous.status == PAYMENT_FAILED:
        rejection = (
            PaymentRejection.query.filter_by(payment_id=previous.id)
            .order_by(PaymentRejection.rejected_at.desc(), PaymentRejection.id.desc())
            .first()
        )
        if rejection is not None:
            rejection.was_replaced = True
            rejection.replacement_payment_id = replacement.id
            rejection.replaced_at = now
    return rejection


def _status_change(payment: Payment, status: str, now) -> str:
    previous = payment.status
    payment.status = status
    payment.updated_at = now
    return previous


# ---------------------------------------------------------------------------
# Manual payments
# ---------------------------------------------------------------------------


def create_payment(
    user: User | None,
    application_id: int,
    *,
    amount,
    service_fee,
    net_amount,
    method: str,
    reference_number: str,
    now=None,
) -> dict:
    """Record a manual payment; a failed earlier payment makes this a resubmission."""

    now = now or utcnow()
    application = load_owned_application(user, application_id, lock=True)
    if application.status not in PAYABLE_STATUSES:
        raise InvalidState(f"Cannot pay for a {application.status} application.")

    existing = current_payment(application.id)
    if existing is not None and existing.status not in REPLACEABLE_STATUSES:
        raise InvalidState("Payment already exists for this application.")
    is_resubmission = existing is not None and existing.status == PAYMENT_FAILED

    payment = new_payment(
        application,
        amount=amount,
        service_fee=service_fee,
        net_amount=net_amount,
        method=method,
        reference_number=reference_number,
        now=now,
    )
    if existing is not None:
        _supersede(existing, payment, now)

    application.set_status(STATUS_FOR_PAYMENT_VALIDATION, now)

    if is_resubmission:
        notifications.notify_admins(
            application,
            notification_type="payment_resubmitted",
            title="Payment Resubmitted",
            message=(
                f"{user.display_name} has resubmitted payment for their application "
                "after rejection. Please review the new payment submission."
            ),
            action_url=f"/admin/applications/{application.id}/payment-validation",
        )
    else:
        notifications.notify_applicant(
            application,
            notification_type="PaymentReceived",
            title="Payment Received",
            message=(
                f"Payment submission received for {payment.net_amount} via "
                f"{payment.method}. Reference: {payment.reference_number}"
            ),
        )

    return {"payment": payment.to_dict(), "is_resubmission": is_resubmission}


def complete_payment(payment: Payment, *, event_type: str, details: Mapping | None = None, now=None) -> None:
    """Mark ``payment`` complete and move its application forward."""

    now = now or utcnow()
    previous = _status_change(payment, PAYMENT_COMPLETE, now)
    payment.failure_reason = None
    _log(payment, event_type, details={"previous_status": previous, **(details or {})}, now=now)

    application = payment.application
    if application.status in PAYABLE_STATUSES:
        next_status = (
            STATUS_FOR_ORIENTATION
            if application.job_category.require_orientation
            else STATUS_UNDER_REVIEW
        )
        application.set_status(next_status, now)
    notifications.notify_applicant(
        application,
        notification_type="PaymentConfirmed",
        title="Payment Confirmed",
        message=(
            f"Your payment of {payment.net_amount} has been confirmed. "
            "Your application is now being processed."
        ),
    )
    logger.info("Payment %s completed via %s", payment.id, event_type)


def fail_payment(payment: Payment, *, reason: str, event_type: str, details: Mapping | None = None, now=None) -> None:
    now = now or utcnow()
    previous = _status_change(payment, PAYMENT_FAILED, now)
    payment.failure_reason = reason
    _log(
        payment,
        event_type,
        error_message=reason,
        details={"previous_status": previous, **(details or {})},
        now=now,
    )
    notifications.notify_applicant(
        payment.application,
        notification_type="PaymentFailed",
        title="Payment Failed",
        message=f"Your payment could not be completed: {reason} Please try again.",
    )


def validate_payment(reviewer: User | None, payment_id: int, now=None) -> Payment:
    payment = get_payment(payment_id)
    load_reviewable_application(reviewer, payment.application_id, lock=True)
    if payment.status != PAYMENT_PENDING:
        raise InvalidState(f"Cannot validate a {payment.status} payment.")
    complete_payment(
        payment,
        event_type="payment_validated",
        details={"validated_by": reviewer.id},
        now=now,
    )
    return payment


def reject_payment(
    reviewer: User | None,
    payment_id: int,
    *,
    category: str,
    reason: str,
    specific_issues: Iterable[str] = (),
    now=None,
) -> PaymentRejection:
    """Reject a submitted payment so the applicant can pay again."""

    now = now or utcnow()
    if category not in PAYMENT_REJECTION_CATEGORIES:
        raise ValidationFailed(
            f"category must be one of: {', '.join(PAYMENT_REJECTION_CATEGORIES)}."
        )
    if not reason or not reason.strip():
        raise ValidationFailed("A reason is required.")

    payment = get_payment(payment_id)
    application = load_reviewable_application(reviewer, payment.application_id, lock=True)
    if payment.status != PAYMENT_PENDING or not payment.is_current:
        raise InvalidState(f"Cannot reject a {payment.status} payment.")

    attempt_number = (
        PaymentRejection.query.filter_by(application_id=application.id).count() + 1
    )
    rejection = PaymentRejection(
        application_id=application.id,
        payment_id=payment.id,
        category=category,
        reason=reason.strip(),
        specific_issues=[str(item) for item in specific_issues],
        attempt_number=attempt_number,
        rejected_by=reviewer.id,
        rejected_at=now,
    )
    db.session.add(rejection)

    _status_change(payment, PAYMENT_FAILED, now)
    payment.failure_reason = rejection.reason
    _log(
        payment,
        "payment_rejected",
        error_message=rejection.reason,
        details={"category": category, "attempt_number": attempt_number},
        now=now,
    )
    application.set_status(STATUS_PAYMENT_REJECTED, now)
    notifications.notify_applicant(
        application,
        notification_type="PaymentRejected",
        title="Payment Rejected",
        message=(
            f"Your payment was rejected: {rejection.reason} "
            "Please submit a new payment."
        ),
        action_url=f"/applications/{application.id}/payment",
    )
    db.session.flush()
    return rejection


# ---------------------------------------------------------------------------
# Gateway checkout
# ---------------------------------------------------------------------------


def create_checkout(
    user: User | None,
    application_id: int,
    *,
    success_url: str | None = None,
    cancel_url: str | None = None,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Start (or resume) a Stripe Checkout for the application fee."""

    settings = get_settings(settings)
    now = now or utcnow()
    application = load_owned_application(user, application_id, lock=True)
    if application.status not in PAYABLE_STATUSES:
        raise InvalidState(f"Cannot pay for a {application.status} application.")

    existing = current_payment(application.id)
    if existing is not None:
        if existing.status in (PAYMENT_PENDING, PAYMENT_PROCESSING) and existing.checkout_url:
            return {"payment": existing.to_dict(), "checkout_url": existing.checkout_url, "reused": True}
        if existing.status not in REPLACEABLE_STATUSES:
            raise InvalidState("A payment for this application is already in progress or complete.")

    payment = new_payment(
        application,
        amount=settings.base_fee,
        service_fee=settings.service_fee,
        net_amount=settings.total_fee,
        method=METHOD_ONLINE_CHECKOUT,
        reference_number=f"HC-{application.id}-{int(now.timestamp())}",
        status=PAYMENT_PROCESSING,
        now=now,
    )

    try:
        session = gateway.create_checkout_session(
            payment,
            currency=settings.currency,
            customer_email=user.email,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except GatewayError:
        db.session.rollback()
        raise

    payment.gateway_checkout_id = session["id"]
    payment.checkout_url = session["url"]
    if existing is not None:
        _supersede(existing, payment, now)
    _log(
        payment,
        "checkout_created",
        details={"checkout_url": payment.checkout_url},
        currency=settings.currency,
        now=now,
    )
    return {"payment": payment.to_dict(), "checkout_url": payment.checkout_url, "reused": False}


# ---------------------------------------------------------------------------
# Abandonment
# ---------------------------------------------------------------------------


def is_abandoned(payment: Payment, settings: WorkflowSettings | None = None, now=None) -> bool:
    settings = get_settings(settings)
    now = now or utcnow()
    return payment.status == PAYMENT_PROCESSING and now - payment.created_at > settings.payment_timeout


def check_abandonment(
    user: User | None,
    payment_id: int,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Report whether a payment is abandoned without changing anything."""

    settings = get_settings(settings)
    now = now or utcnow()
    payment = get_payment(payment_id)
    load_visible_application(user, payment.application_id)
    return {
        "payment_id": payment.id,
        "status": payment.status,
        "is_abandoned": is_abandoned(payment, settings, now),
        "age_seconds": (now - payment.created_at).total_seconds(),
        "timeout_seconds": settings.payment_timeout.total_seconds(),
    }


def _cancel_payment(payment: Payment, *, status: str, reason: str, event_type: str, now) -> None:
    previous = _status_change(payment, status, now)
    payment.failure_reason = reason
    _log(
        payment,
        event_type,
        error_message=reason,
        details={"previous_status": previous},
        now=now,
    )
    application = payment.application
    if application.status in PAYABLE_STATUSES:
        application.set_status(STATUS_SUBMITTED, now)
    notifications.notify_applicant(
        application,
        notification_type="PaymentCancelled",
        title="Payment Cancelled" if status == PAYMENT_CANCELLED else "Payment Expired",
        message=f"{reason} You can start a new payment at any time.",
        action_url=f"/applications/{application.id}/payment",
    )


def handle_abandoned_payment(
    payment: Payment,
    *,
    reason: str = "Payment abandoned: checkout was not completed in time.",
    event_type: str = "payment_abandoned",
    now=None,
) -> Payment:
    """Cancel a ``Processing`` payment and reopen the application for payment."""

    if payment.status != PAYMENT_PROCESSING:
        raise InvalidState(f"Cannot cancel a {payment.status} payment.")
    _cancel_payment(
        payment,
        status=PAYMENT_CANCELLED,
        reason=reason,
        event_type=event_type,
        now=now or utcnow(),
    )
    return payment


def abandon_payment(user: User | None, payment_id: int, now=None) -> Payment:
    payment = get_payment(payment_id)
    load_visible_application(user, payment.application_id, lock=True)
    return handle_abandoned_payment(payment, now=now)


def cleanup_abandoned_payments(settings: WorkflowSettings | None = None, now=None) -> dict:
    """Cancel every abandoned payment, committing each one on its own."""

    settings = get_settings(settings)
    now = now or utcnow()
    cutoff = now - settings.payment_timeout
    payment_ids = [
        payment_id
        for (payment_id,) in db.session.query(Payment.id)
        .filter(Payment.status == PAYMENT_PROCESSING, Payment.created_at < cutoff)
        .order_by(Payment.id.asc())
        .all()
    ]

    results = []
    for payment_id in payment_ids:
        try:
            payment = db.session.get(Payment, payment_id)
            handle_abandoned_payment(payment, now=now)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.exception("Failed to clean up abandoned payment %s", payment_id)
            results.append({"payment_id": payment_id, "success": False, "error": str(exc)})
        else:
            results.append({"payment_id": payment_id, "success": True})

    if payment_ids:
        logger.info(
            "Abandoned payment sweep processed %s payments (%s failed)",
            len(payment_ids),
            sum(1 for result in results if not result["success"]),
        )
    return {"processed": len(payment_ids), "results": results}


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def _apply_status(
    payment: Payment,
    status: str | None,
    *,
    event_type: str,
    reason: str | None = None,
    details: Mapping | None = None,
    now=None,
) -> bool:
    """Move ``payment`` to a gateway-reported status. Returns True on change."""

    now = now or utcnow()
    if status is None or status == payment.status:
        return False
    if payment.status == PAYMENT_REFUNDED:
        return False
    if payment.status == PAYMENT_COMPLETE and status != PAYMENT_REFUNDED:
        return False

    if status == PAYMENT_COMPLETE:
        complete_payment(payment, event_type=event_type, details=details, now=now)
    elif status == PAYMENT_FAILED:
        fail_payment(
            payment,
            reason=reason or "Payment was declined by the gateway.",
            event_type=event_type,
            details=details,
            now=now,
        )
    elif status in (PAYMENT_CANCELLED, PAYMENT_EXPIRED):
        _cancel_payment(
            payment,
            status=status,
            reason=reason
            or (
                "Payment checkout expired."
                if status == PAYMENT_EXPIRED
                else "Payment was cancelled."
            ),
            event_type=event_type,
            now=now,
        )
    elif status == PAYMENT_REFUNDED:
        previous = _status_change(payment, PAYMENT_REFUNDED, now)
        _log(
            payment,
            event_type,
            details={"previous_status": previous, "reason": reason, **(details or {})},
            now=now,
        )
        notifications.notify_applicant(
            payment.application,
            notification_type="PaymentRefunded",
            title="Payment Refunded",
            message=f"Your payment of {payment.net_amount} has been refunded.",
        )
    else:
        previous = _status_change(payment, status, now)
        _log(payment, event_type, details={"previous_status": previous, **(details or {})}, now=now)
    return True


def sync_payment_status(payment: Payment, now=None) -> dict:
    """Pull the authoritative status from the gateway and apply it."""

    result = gateway.fetch_payment_status(payment)
    now = now or utcnow()
    if result.gateway_payment_id and not payment.gateway_payment_id:
        payment.gateway_payment_id = result.gateway_payment_id
    changed = _apply_status(
        payment,
        result.status,
        event_type="status_synced",
        reason=result.failure_reason,
        details={"gateway_status": result.raw_status, **result.details},
        now=now,
    )
    if not changed:
        _log(payment, "status_checked", details={"gateway_status": result.raw_status}, now=now)
    return {"payment": payment.to_dict(), "changed": changed, "gateway_status": result.raw_status}


def sync_payment(user: User | None, payment_id: int, now=None) -> dict:
    payment = get_payment(payment_id)
    load_visible_application(user, payment.application_id, lock=True)
    return sync_payment_status(payment, now=now)


def handle_return(user: User | None, payment_id: int, status: str, now=None) -> dict:
    """Apply the outcome reported by the checkout redirect.

    Only an online checkout still in ``Processing`` reacts to the redirect.
    The redirect is only trusted when the payment has no gateway reference;
    otherwise the gateway is asked for the real status. Manual payments are
    settled by admin validation and are returned unchanged.
    """

    if status not in RETURN_STATUSES:
        raise ValidationFailed(f"status must be one of: {', '.join(RETURN_STATUSES)}.")
    now = now or utcnow()
    payment = get_payment(payment_id)
    load_owned_application(user, payment.application_id, lock=True)

    if payment.status == PAYMENT_COMPLETE:
        return {"payment": payment.to_dict(), "status": payment.status, "already_complete": True}
    if payment.method != METHOD_ONLINE_CHECKOUT or payment.status != PAYMENT_PROCESSING:
        return {"payment": payment.to_dict(), "status": payment.status, "already_complete": False}

    if status == "success":
        if payment.gateway_reference:
            sync_payment_status(payment, now=now)
        else:
            complete_payment(payment, event_type="return_success", now=now)
    elif status == "cancelled":
        handle_abandoned_payment(
            payment,
            reason="Payment was cancelled by the user.",
            event_type="payment_cancelled",
            now=now,
        )
    else:
        _status_change(payment, PAYMENT_FAILED, now)
        payment.failure_reason = "Payment failed at checkout."
        _log(payment, "return_failed", error_message=payment.failure_reason, now=now)

    return {"payment": payment.to_dict(), "status": payment.status, "already_complete": False}


def _find_webhook_payment(data_object: Mapping) -> Payment | None:
    metadata = data_object.get("metadata") or {}
    payment_id = metadata.get("payment_id")
    if payment_id:
        try:
            payment = db.session.get(Payment, int(payment_id))
        except (TypeError, ValueError):
            payment = None
        if payment is not None:
            return payment

    object_id = data_object.get("id")
    intent_id = data_object.get("payment_intent")
    if object_id:
        payment = Payment.query.filter(
            (Payment.gateway_checkout_id == object_id)
            | (Payment.gateway_payment_id == object_id)
        ).first()
        if payment is not None:
            return payment
    if intent_id:
        return Payment.query.filter_by(gateway_payment_id=intent_id).first()
    return None


def apply_webhook_event(event: Mapping, now=None) -> dict:
    """Apply a verified gateway event to the matching payment."""

    now = now or utcnow()
    event_type = event.get("type")
    data_object = (event.get("data") or {}).get("object") or {}
    target = WEBHOOK_EVENTS.get(event_type)
    if target is None:
        return {"handled": False, "reason": "ignored"}
    if (
        event_type == "checkout.session.completed"
        and data_object.get("payment_status") not in ("paid", "no_payment_required")
    ):
        # Delayed payment methods finish through async_payment_succeeded.
        return {"handled": False, "reason": "awaiting_payment"}

    payment = _find_webhook_payment(data_object)
    if payment is None:
        logger.warning("Webhook %s did not match any payment", event_type)
        _log(
            None,
            "webhook_orphan",
            error_message=f"No payment found for {event_type}",
            gateway_checkout_id=data_object.get("id"),
            gateway_payment_id=data_object.get("payment_intent"),
            details={"event_id": event.get("id"), "event_type": event_type},
            now=now,
        )
        return {"handled": False, "reason": "orphan"}

    if payment.status == target:
        return {"handled": True, "duplicate": True, "payment_id": payment.id, "status": payment.status}

    intent_id = data_object.get("payment_intent")
    if event_type.startswith("payment_intent."):
        intent_id = data_object.get("id")
    if intent_id and not payment.gateway_payment_id:
        payment.gateway_payment_id = intent_id

    reason = None
    if target == PAYMENT_FAILED:
        reason = gateway.failure_message(data_object)
    elif target == PAYMENT_REFUNDED:
        reason = gateway.refund_reason(data_object)

    changed = _apply_status(
        payment,
        target,
        event_type=f"webhook:{event_type}",
        reason=reason,
        details={"event_id": event.get("id")},
        now=now,
    )
    return {
        "handled": True,
        "duplicate": False,
        "changed": changed,
        "payment_id": payment.id,
        "status": payment.status,
    }


def payment_history(user: User | None, application_id: int) -> list[dict]:
    application = load_visible_application(user, application_id)
    payments = application.payments.order_by(Payment.id.desc()).all()
    return [payment.to_dict() for payment in payments]


def list_pending_validation(reviewer: User | None) -> list[dict]:
    """Pending manual payments in the reviewer's job categories."""

    require_reviewer(reviewer)
    payments = (
        Payment.query.join(Application)
        .filter(Payment.status == PAYMENT_PENDING, Payment.is_current.is_(True))
        .order_by(Payment.created_at.asc())
        .all()
    )
    return [
        payment.to_dict()
        for payment in payments
        if reviewer.can_see_category(payment.application.job_category_id)
    ]
