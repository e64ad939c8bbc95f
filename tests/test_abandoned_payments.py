"""Abandoned checkout detection, cancellation and the cleanup sweep."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from models import db
from models.application import STATUS_SUBMITTED, Application
from models.notification import Notification
from models.payment import (
    METHOD_ONLINE_CHECKOUT,
    PAYMENT_CANCELLED,
    PAYMENT_COMPLETE,
    PAYMENT_PROCESSING,
    Payment,
    PaymentLog,
)
from models.user import User
from services import InvalidState, NotOwner
from services import payments

CREATED = datetime(2025, 3, 1, 9, 0, 0)


def _processing_payment(application_id: int, created_at=CREATED, checkout_id="cs_test_1") -> int:
    application = db.session.get(Application, application_id)
    payment = payments.new_payment(
        application,
        amount=50,
        service_fee=10,
        net_amount=60,
        method=METHOD_ONLINE_CHECKOUT,
        reference_number=f"HC-{application_id}-{checkout_id}",
        status=PAYMENT_PROCESSING,
        now=created_at,
    )
    payment.gateway_checkout_id = checkout_id
    db.session.commit()
    return payment.id


def test_exactly_at_timeout_is_not_abandoned(app, workflow, make_application):
    with app.app_context():
        payment_id = _processing_payment(make_application(status=STATUS_SUBMITTED))
        payment = db.session.get(Payment, payment_id)

        assert payments.is_abandoned(payment, now=CREATED + timedelta(minutes=5)) is False
        assert payments.is_abandoned(
            payment, now=CREATED + timedelta(minutes=5, milliseconds=1)
        ) is True


def test_only_processing_payments_can_be_abandoned(app, workflow, make_application):
    with app.app_context():
        payment_id = _processing_payment(make_application(status=STATUS_SUBMITTED))
        payment = db.session.get(Payment, payment_id)
        payment.status = PAYMENT_COMPLETE
        db.session.commit()

        assert payments.is_abandoned(payment, now=CREATED + timedelta(hours=1)) is False
        with pytest.raises(InvalidState):
            payments.handle_abandoned_payment(payment, now=CREATED + timedelta(hours=1))


def test_check_abandonment_reports_age(app, workflow, make_application):
    with app.app_context():
        payment_id = _processing_payment(make_application(status=STATUS_SUBMITTED))
        applicant = db.session.get(User, workflow.applicant)

        report = payments.check_abandonment(
            applicant, payment_id, now=CREATED + timedelta(minutes=2)
        )

        assert report == {
            "payment_id": payment_id,
            "status": PAYMENT_PROCESSING,
            "is_abandoned": False,
            "age_seconds": 120.0,
            "timeout_seconds": 300.0,
        }
        assert db.session.get(Payment, payment_id).status == PAYMENT_PROCESSING

        with pytest.raises(NotOwner):
            payments.check_abandonment(db.session.get(User, workflow.other), payment_id)


def test_abandoning_cancels_and_reopens_application(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(status=STATUS_SUBMITTED)
        payment_id = _processing_payment(app_id)
        applicant = db.session.get(User, workflow.applicant)

        payments.abandon_payment(applicant, payment_id, now=CREATED + timedelta(minutes=1))
        db.session.commit()

        payment = db.session.get(Payment, payment_id)
        assert payment.status == PAYMENT_CANCELLED
        assert payment.failure_reason.startswith("Payment abandoned")
        assert db.session.get(Application, app_id).status == STATUS_SUBMITTED
        assert PaymentLog.query.filter_by(payment_id=payment_id, event_type="payment_abandoned").count() == 1
        assert Notification.query.filter_by(
            user_id=workflow.applicant, title="Payment Cancelled"
        ).count() == 1


def test_cleanup_isolates_failures(app, workflow, make_application, monkeypatch):
    with app.app_context():
        first = _processing_payment(make_application(status=STATUS_SUBMITTED), checkout_id="cs_1")
        second = _processing_payment(make_application(status=STATUS_SUBMITTED), checkout_id="cs_2")
        fresh = _processing_payment(
            make_application(status=STATUS_SUBMITTED),
            created_at=CREATED + timedelta(minutes=58),
            checkout_id="cs_3",
        )

        original = payments.handle_abandoned_payment

        def _flaky(payment, **kwargs):
            if payment.id == first:
                raise RuntimeError("database hiccup")
            return original(payment, **kwargs)

        monkeypatch.setattr(payments, "handle_abandoned_payment", _flaky)

        report = payments.cleanup_abandoned_payments(now=CREATED + timedelta(hours=1))

        assert report["processed"] == 2
        assert report["results"] == [
            {"payment_id": first, "success": False, "error": "database hiccup"},
            {"payment_id": second, "success": True},
        ]
        assert db.session.get(Payment, first).status == PAYMENT_PROCESSING
        assert db.session.get(Payment, second).status == PAYMENT_CANCELLED
        assert db.session.get(Payment, fresh).status == PAYMENT_PROCESSING


def test_cleanup_command(app, workflow, make_application):
    with app.app_context():
        payment_id = _processing_payment(make_application(status=STATUS_SUBMITTED))

    result = app.test_cli_runner().invoke(args=["cleanup-abandoned-payments"])

    assert result.exit_code == 0
    assert "Processed 1 abandoned payments (0 failed)." in result.output
    with app.app_context():
        assert db.session.get(Payment, payment_id).status == PAYMENT_CANCELLED


def test_abandon_route(app, client, workflow, make_application, auth_headers):
    with app.app_context():
        payment_id = _processing_payment(make_application(status=STATUS_SUBMITTED))

    response = client.get(
        f"/payments/{payment_id}/abandonment", headers=auth_headers("user_applicant")
    )
    assert response.status_code == 200
    assert response.get_json()["is_abandoned"] is True

    response = client.post(
        f"/payments/{payment_id}/abandon", headers=auth_headers("user_applicant")
    )
    assert response.status_code == 200
    assert response.get_json()["status"] == PAYMENT_CANCELLED

    response = client.post(
        f"/payments/{payment_id}/abandon", headers=auth_headers("user_applicant")
    )
    assert response.status_code == 409
