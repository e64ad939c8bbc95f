"""Manual payments, admin validation and Stripe Checkout creation."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
import stripe

from models import db
from models.application import (
    STATUS_FOR_ORIENTATION,
    STATUS_FOR_PAYMENT_VALIDATION,
    STATUS_PAYMENT_REJECTED,
    STATUS_PENDING_PAYMENT,
    STATUS_SUBMITTED,
    STATUS_UNDER_REVIEW,
    Application,
)
from models.notification import Notification
from models.payment import (
    PAYMENT_COMPLETE,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    PAYMENT_PROCESSING,
    Payment,
    PaymentLog,
    PaymentRejection,
)
from models.user import User
from services import GatewayError, InvalidState, ValidationFailed
from services import payments

NOW = datetime(2025, 3, 1, 9, 0, 0)


def _user(user_id: int) -> User:
    return db.session.get(User, user_id)


def _pay(app_id, user_id, reference="GC-1", amount=50, service_fee=10, net_amount=60):
    result = payments.create_payment(
        _user(user_id),
        app_id,
        amount=amount,
        service_fee=service_fee,
        net_amount=net_amount,
        method="Gcash",
        reference_number=reference,
        now=NOW,
    )
    db.session.commit()
    return result


def test_create_payment_moves_application_to_validation(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)

        result = _pay(app_id, workflow.applicant)

        assert result["is_resubmission"] is False
        payment = db.session.get(Payment, result["payment"]["id"])
        assert payment.status == PAYMENT_PENDING
        assert payment.net_amount == Decimal("60")
        assert db.session.get(Application, app_id).status == STATUS_FOR_PAYMENT_VALIDATION
        received = Notification.query.filter_by(
            user_id=workflow.applicant, title="Payment Received"
        ).one()
        assert "GC-1" in received.message
        assert PaymentLog.query.filter_by(payment_id=payment.id, event_type="payment_created").count() == 1


@pytest.mark.parametrize(
    "amount, service_fee, net_amount",
    [(50, 10, 61), (0, 10, 10), (50, -1, 49), ("fifty", 10, 60)],
)
def test_create_payment_validates_amounts(app, workflow, make_application, amount, service_fee, net_amount):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)

        with pytest.raises(ValidationFailed):
            _pay(app_id, workflow.applicant, amount=amount, service_fee=service_fee, net_amount=net_amount)
        db.session.rollback()
        assert Payment.query.count() == 0


def test_second_payment_while_active_is_refused(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)
        _pay(app_id, workflow.applicant)

        with pytest.raises(InvalidState):
            _pay(app_id, workflow.applicant, reference="GC-2")


def test_resubmission_after_rejection_supersedes_failed_payment(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)
        first_id = _pay(app_id, workflow.applicant)["payment"]["id"]

        rejection = payments.reject_payment(
            _user(workflow.food_admin),
            first_id,
            category="invalid_receipt",
            reason="Receipt does not match the reference number.",
            now=NOW,
        )
        db.session.commit()
        assert rejection.attempt_number == 1
        assert db.session.get(Payment, first_id).status == PAYMENT_FAILED
        assert db.session.get(Application, app_id).status == STATUS_PAYMENT_REJECTED

        result = _pay(app_id, workflow.applicant, reference="GC-2")

        assert result["is_resubmission"] is True
        new_id = result["payment"]["id"]
        old = db.session.get(Payment, first_id)
        assert old is not None
        assert old.is_current is False
        assert old.superseded_by_id == new_id
        rejection = db.session.get(PaymentRejection, rejection.id)
        assert rejection.was_replaced is True
        assert rejection.replacement_payment_id == new_id
        assert db.session.get(Application, app_id).status == STATUS_FOR_PAYMENT_VALIDATION

        resubmitted = Notification.query.filter_by(title="Payment Resubmitted").all()
        assert {n.user_id for n in resubmitted} == {workflow.super_admin, workflow.food_admin}
        assert payments.current_payment(app_id).id == new_id


def test_validate_payment_routes_to_orientation(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)
        payment_id = _pay(app_id, workflow.applicant)["payment"]["id"]

        payments.validate_payment(_user(workflow.food_admin), payment_id, now=NOW)
        db.session.commit()

        assert db.session.get(Payment, payment_id).status == PAYMENT_COMPLETE
        assert db.session.get(Application, app_id).status == STATUS_FOR_ORIENTATION


def test_validate_payment_without_orientation_goes_to_review(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(category_id=workflow.nonfood, status=STATUS_PENDING_PAYMENT)
        payment_id = _pay(app_id, workflow.applicant)["payment"]["id"]

        payments.validate_payment(_user(workflow.nonfood_admin), payment_id, now=NOW)
        db.session.commit()

        assert db.session.get(Application, app_id).status == STATUS_UNDER_REVIEW

        with pytest.raises(InvalidState):
            payments.validate_payment(_user(workflow.nonfood_admin), payment_id, now=NOW)


def test_admin_payment_routes(app, client, workflow, make_application, auth_headers):
    with app.app_context():
        app_id = make_application(status=STATUS_PENDING_PAYMENT)
        payment_id = _pay(app_id, workflow.applicant)["payment"]["id"]

    response = client.get("/admin/payments/pending", headers=auth_headers("user_nonfood_admin"))
    assert response.get_json()["payments"] == []

    response = client.get("/admin/payments/pending", headers=auth_headers("user_food_admin"))
    assert [item["id"] for item in response.get_json()["payments"]] == [payment_id]

    response = client.post(
        f"/admin/payments/{payment_id}/reject",
        json={"category": "wrong_amount", "reason": "Paid 50 instead of 60."},
        headers=auth_headers("user_food_admin"),
    )
    assert response.status_code == 201
    assert response.get_json()["attempt_number"] == 1

    response = client.post(
        f"/payments/applications/{app_id}",
        json={
            "amount": 50,
            "service_fee": 10,
            "net_amount": 60,
            "payment_method": "CityHall",
            "reference_number": "CH-77",
        },
        headers=auth_headers("user_applicant"),
    )
    assert response.status_code == 201
    assert response.get_json()["is_resubmission"] is True

    response = client.get(f"/payments/applications/{app_id}", headers=auth_headers("user_applicant"))
    history = response.get_json()["payments"]
    assert [item["is_current"] for item in history] == [True, False]


def _fake_session(**overrides):
    session = {
        "id": "cs_test_123",
        "url": "https://checkout.stripe.com/c/pay/cs_test_123",
    }
    session.update(overrides)
    return session


def test_checkout_creates_processing_payment(app, workflow, make_application, monkeypatch):
    captured = {}

    def _mock_create(**params):
        captured.update(params)
        return _fake_session()

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(_mock_create))

    with app.app_context():
        app_id = make_application(status=STATUS_SUBMITTED)

        result = payments.create_checkout(_user(workflow.applicant), app_id, now=NOW)
        db.session.commit()

        payment = db.session.get(Payment, result["payment"]["id"])
        assert payment.status == PAYMENT_PROCESSING
        assert payment.gateway_checkout_id == "cs_test_123"
        assert result["checkout_url"].endswith("cs_test_123")
        assert result["reused"] is False

    amounts = [item["price_data"]["unit_amount"] for item in captured["line_items"]]
    assert amounts == [5000, 1000]
    assert captured["customer_email"] == "applicant@example.com"
    assert captured["metadata"] == {
        "application_id": str(app_id),
        "payment_id": str(result["payment"]["id"]),
    }
    assert captured["success_url"].startswith("https://example.com/payment/success?payment_id=")


def test_checkout_reuses_open_session(app, workflow, make_application, monkeypatch):
    calls = []

    def _mock_create(**params):
        calls.append(params)
        return _fake_session()

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(_mock_create))

    with app.app_context():
        app_id = make_application(status=STATUS_SUBMITTED)
        first = payments.create_checkout(_user(workflow.applicant), app_id, now=NOW)
        db.session.commit()
        second = payments.create_checkout(_user(workflow.applicant), app_id, now=NOW)

    assert second["reused"] is True
    assert second["payment"]["id"] == first["payment"]["id"]
    assert len(calls) == 1


def test_checkout_gateway_failure_leaves_no_payment(app, workflow, make_application, monkeypatch):
    def _mock_create(**params):
        raise stripe.APIConnectionError("Network unreachable")

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(_mock_create))

    with app.app_context():
        app_id = make_application(status=STATUS_SUBMITTED)

        with pytest.raises(GatewayError) as excinfo:
            payments.create_checkout(_user(workflow.applicant), app_id, now=NOW)

        assert "Network unreachable" in excinfo.value.description
        assert Payment.query.count() == 0
        assert db.session.get(Application, app_id).status == STATUS_SUBMITTED


def test_checkout_route_returns_bad_gateway(app, client, workflow, make_application, auth_headers, monkeypatch):
    def _mock_create(**params):
        raise stripe.APIConnectionError("Network unreachable")

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(_mock_create))

    with app.app_context():
        app_id = make_application(status=STATUS_SUBMITTED)

    response = client.post(
        f"/payments/applications/{app_id}/checkout", headers=auth_headers("user_applicant")
    )

    assert response.status_code == 502
    assert response.get_json()["type"] == "GatewayError"
