"""Draft creation, document upload and submission."""

from __future__ import annotations

from datetime import datetime, timedelta
from io import BytesIO

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.application import (
    STATUS_DRAFT,
    STATUS_PENDING_PAYMENT,
    STATUS_SUBMITTED,
    STATUS_UNDER_REVIEW,
    Application,
)
from models.notification import Notification
from models.payment import PAYMENT_PENDING, Payment
from models.user import User
from services import (
    AlreadySubmitted,
    MissingRequiredDocument,
    NotAuthenticated,
    NotOwner,
    WorkflowSettings,
)
from services import review

NOW = datetime(2025, 3, 1, 9, 0, 0)


def _applicant() -> User:
    return User.query.filter_by(external_id="user_applicant").one()


def test_deferred_submission_sets_deadline_seven_days_out(app, workflow, make_application):
    with app.app_context():
        app_id = make_application()

        result = review.submit_application(_applicant(), app_id, now=NOW)
        db.session.commit()

        application = db.session.get(Application, app_id)
        assert application.status == STATUS_PENDING_PAYMENT
        assert application.payment_deadline == NOW + timedelta(days=7)
        assert result["payment"] is None
        assert result["requires_orientation"] is True
        assert Payment.query.count() == 0

        notification = Notification.query.filter_by(user_id=workflow.applicant).one()
        assert notification.title == "Application Submitted - Payment Required"


def test_pay_now_submission_creates_exactly_one_payment(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(category_id=workflow.nonfood)

        result = review.submit_application(
            _applicant(),
            app_id,
            payment_method="Gcash",
            reference_number="GC-0001",
            now=NOW,
        )
        db.session.commit()

        application = db.session.get(Application, app_id)
        assert application.status == STATUS_SUBMITTED
        assert application.payment_deadline is None
        payments = Payment.query.filter_by(application_id=app_id).all()
        assert len(payments) == 1
        payment = payments[0]
        assert payment.status == PAYMENT_PENDING
        assert payment.net_amount == payment.amount + payment.service_fee
        assert float(payment.net_amount) == 60.0
        assert result["total_amount"] == 60.0


def test_fees_come_from_settings(app, workflow, make_application):
    with app.app_context():
        app_id = make_application()
        settings = WorkflowSettings(base_fee=100, service_fee=15)

        review.submit_application(
            _applicant(),
            app_id,
            payment_method="Maya",
            reference_number="MY-1",
            settings=settings,
            now=NOW,
        )
        db.session.commit()

        payment = Payment.query.filter_by(application_id=app_id).one()
        assert float(payment.amount) == 100.0
        assert float(payment.net_amount) == 115.0


def test_missing_required_document_names_the_second_type(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(upload=False)
        review.upload_document(
            _applicant(),
            app_id,
            workflow.valid_id,
            storage_ref="id.pdf",
            original_filename="id.pdf",
            file_type="application/pdf",
        )
        db.session.commit()

        with pytest.raises(MissingRequiredDocument) as excinfo:
            review.submit_application(_applicant(), app_id, now=NOW)

        assert excinfo.value.document_name == "Chest X-ray"
        assert "Missing required document: Chest X-ray" in excinfo.value.description
        assert db.session.get(Application, app_id).status == STATUS_DRAFT


def test_submitting_twice_is_rejected(app, workflow, make_application):
    with app.app_context():
        app_id = make_application()
        review.submit_application(_applicant(), app_id, now=NOW)
        db.session.commit()

        with pytest.raises(AlreadySubmitted):
            review.submit_application(_applicant(), app_id, now=NOW)


def test_only_owner_can_submit(app, workflow, make_application):
    with app.app_context():
        app_id = make_application()
        other = db.session.get(User, workflow.other)

        with pytest.raises(NotOwner):
            review.submit_application(other, app_id, now=NOW)
        with pytest.raises(NotAuthenticated):
            review.submit_application(None, app_id, now=NOW)


def test_upload_replaces_current_document(app, workflow, make_application):
    with app.app_context():
        app_id = make_application(upload=False)
        first = review.upload_document(
            _applicant(), app_id, workflow.valid_id,
            storage_ref="a.pdf", original_filename="a.pdf", file_type="application/pdf",
        )
        second = review.upload_document(
            _applicant(), app_id, workflow.valid_id,
            storage_ref="b.pdf", original_filename="b.pdf", file_type="application/pdf",
        )
        db.session.commit()

        assert first.is_current is False
        assert second.is_current is True
        assert [upload.id for upload in review.current_uploads(app_id)] == [second.id]


def test_draft_upload_and_submit_via_api(app, client, workflow, auth_headers):
    headers = auth_headers("user_applicant")

    response = client.post(
        "/applications", json={"job_category_id": workflow.food}, headers=headers
    )
    assert response.status_code == 201
    app_id = response.get_json()["id"]
    assert response.get_json()["status"] == STATUS_DRAFT

    for document_type_id, name in ((workflow.valid_id, "id.pdf"), (workflow.xray, "xray.png")):
        response = client.post(
            f"/applications/{app_id}/documents",
            data={
                "document_type_id": str(document_type_id),
                "document": (BytesIO(b"%PDF-1.4 test"), name),
            },
            content_type="multipart/form-data",
            headers=headers,
        )
        assert response.status_code == 201
        assert response.get_json()["review_status"] == "Pending"

    response = client.post(f"/applications/{app_id}/submit", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["application"]["status"] == STATUS_PENDING_PAYMENT

    response = client.post(f"/applications/{app_id}/submit", headers=headers)
    assert response.status_code == 409
    assert response.get_json()["type"] == "AlreadySubmitted"

    response = client.get(f"/applications/{app_id}", headers=headers)
    assert len(response.get_json()["documents"]) == 2


def test_submit_route_reports_missing_document(app, client, workflow, auth_headers, make_application):
    with app.app_context():
        app_id = make_application(upload=False)

    response = client.post(
        f"/applications/{app_id}/submit", headers=auth_headers("user_applicant")
    )

    assert response.status_code == 422
    payload = response.get_json()
    assert payload["type"] == "MissingRequiredDocument"
    assert "Valid ID" in payload["detail"]


def test_upload_rejects_disallowed_file_type(app, client, workflow, auth_headers, make_application):
    with app.app_context():
        app_id = make_application(upload=False)

    response = client.post(
        f"/applications/{app_id}/documents",
        data={
            "document_type_id": str(workflow.valid_id),
            "document": (BytesIO(b"MZ"), "payload.exe"),
        },
        content_type="multipart/form-data",
        headers=auth_headers("user_applicant"),
    )

    assert response.status_code == 400
    assert "File type not allowed" in response.get_json()["detail"]


def test_upload_after_submission_is_refused_and_file_removed(
    app, client, workflow, auth_headers, make_application, tmp_path
):
    with app.app_context():
        app_id = make_application(status=STATUS_UNDER_REVIEW)

    response = client.post(
        f"/applications/{app_id}/documents",
        data={
            "document_type_id": str(workflow.valid_id),
            "document": (BytesIO(b"%PDF"), "id.pdf"),
        },
        content_type="multipart/form-data",
        headers=auth_headers("user_applicant"),
    )

    assert response.status_code == 409
    stored = list((tmp_path / "uploads").rglob("*.pdf"))
    assert stored == []


def test_unknown_subject_is_not_authenticated(client, workflow, auth_headers):
    response = client.get("/applications", headers=auth_headers("user_missing"))

    assert response.status_code == 401
    assert response.get_json()["type"] == "NotAuthenticated"


def test_upload_to_someone_elses_application_stores_nothing(
    app, client, workflow, auth_headers, make_application, tmp_path
):
    with app.app_context():
        app_id = make_application(upload=False)

    response = client.post(
        f"/applications/{app_id}/documents",
        data={
            "document_type_id": str(workflow.valid_id),
            "document": (BytesIO(b"%PDF"), "id.pdf"),
        },
        content_type="multipart/form-data",
        headers=auth_headers("user_other"),
    )

    assert response.status_code == 403
    assert response.get_json()["type"] == "NotOwner"
    assert not (tmp_path / "uploads" / str(app_id)).exists()


def test_upload_removes_file_when_database_write_fails(
    app, client, workflow, auth_headers, make_application, monkeypatch, tmp_path
):
    def _failing_upload(*args, **kwargs):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(review, "upload_document", _failing_upload)

    with app.app_context():
        app_id = make_application(upload=False)

    response = client.post(
        f"/applications/{app_id}/documents",
        data={
            "document_type_id": str(workflow.valid_id),
            "document": (BytesIO(b"%PDF"), "id.pdf"),
        },
        content_type="multipart/form-data",
        headers=auth_headers("user_applicant"),
    )

    assert response.status_code == 500
    assert list((tmp_path / "uploads").rglob("*.pdf")) == []
