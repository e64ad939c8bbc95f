"""Shared pytest fixtures for the application tests."""

from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from flask import Flask
from flask.testing import FlaskClient
from flask_jwt_extended import create_access_token

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app  # noqa: E402
from config import Config  # noqa: E402
from models import db  # noqa: E402
from models.application import STATUS_DRAFT, Application  # noqa: E402
from models.document_upload import DocumentUpload  # noqa: E402
from models.job_category import DocumentType, JobCategory, JobCategoryDocument  # noqa: E402
from models.user import User  # noqa: E402


class _BaseTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length-for-hs256"
    RATE_LIMIT = "1000 per minute"
    STRIPE_SECRET_KEY = "sk_test"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    PAYMENT_SUCCESS_URL = "https://example.com/payment/success"
    PAYMENT_CANCEL_URL = "https://example.com/payment/cancel"


@pytest.fixture()
def app(tmp_path) -> Flask:
    """Create a Flask application instance for tests."""

    upload_dir = tmp_path / "uploads"

    class TestConfig(_BaseTestConfig):
        UPLOAD_DIR = str(upload_dir)

    application = create_app(TestConfig)

    with application.app_context():
        db.create_all()

    yield application

    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    """Return a test client for the Flask app."""

    return app.test_client()


@pytest.fixture()
def workflow(app: Flask) -> SimpleNamespace:
    """Seed users, job categories and document requirements.

    ``food`` requires orientation and two documents (plus an optional one);
    ``nonfood`` requires a single document and no orientation.
    """

    with app.app_context():
        valid_id = DocumentType(name="Valid ID")
        xray = DocumentType(name="Chest X-ray")
        drug_test = DocumentType(name="Drug Test")
        food = JobCategory(name="Food Handler", require_orientation=True)
        nonfood = JobCategory(name="Non-Food Worker", require_orientation=False)
        db.session.add_all([valid_id, xray, drug_test, food, nonfood])
        db.session.flush()

        db.session.add_all(
            [
                JobCategoryDocument(job_category=food, document_type=valid_id, is_required=True),
                JobCategoryDocument(job_category=food, document_type=xray, is_required=True),
                JobCategoryDocument(job_category=food, document_type=drug_test, is_required=False),
                JobCategoryDocument(job_category=nonfood, document_type=valid_id, is_required=True),
            ]
        )

        applicant = User(external_id="user_applicant", email="applicant@example.com", full_name="Ana Cruz")
        other = User(external_id="user_other", email="other@example.com", full_name="Ben Reyes")
        super_admin = User(
            external_id="user_super", email="super@example.com", full_name="Super Admin", role="admin"
        )
        food_admin = User(
            external_id="user_food_admin",
            email="food-admin@example.com",
            full_name="Food Admin",
            role="admin",
            managed_categories=[food.id],
        )
        nonfood_admin = User(
            external_id="user_nonfood_admin",
            email="nonfood-admin@example.com",
            full_name="Non-Food Admin",
            role="admin",
            managed_categories=[nonfood.id],
        )
        inspector = User(
            external_id="user_inspector",
            email="inspector@example.com",
            full_name="Ines Inspector",
            role="inspector",
        )
        db.session.add_all([applicant, other, super_admin, food_admin, nonfood_admin, inspector])
        db.session.commit()

        return SimpleNamespace(
            valid_id=valid_id.id,
            xray=xray.id,
            drug_test=drug_test.id,
            food=food.id,
            nonfood=nonfood.id,
            applicant=applicant.id,
            other=other.id,
            super_admin=super_admin.id,
            food_admin=food_admin.id,
            nonfood_admin=nonfood_admin.id,
            inspector=inspector.id,
        )


@pytest.fixture()
def auth_headers(app: Flask):
    """Return a builder for bearer headers keyed by external subject id."""

    def _headers(external_id: str) -> dict[str, str]:
        with app.app_context():
            token = create_access_token(identity=external_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def make_application(workflow: SimpleNamespace):
    """Return a builder creating an application directly in the database.

    Must be called inside an application context. Uploads every required
    document of the category unless ``upload=False``.
    """

    def _make(
        user_id: int | None = None,
        category_id: int | None = None,
        status: str = STATUS_DRAFT,
        upload: bool = True,
    ) -> int:
        application = Application(
            user_id=user_id or workflow.applicant,
            job_category_id=category_id or workflow.food,
            status=status,
        )
        db.session.add(application)
        db.session.flush()
        if upload:
            for document_type in application.job_category.required_document_types():
                db.session.add(
                    DocumentUpload(
                        application_id=application.id,
                        document_type_id=document_type.id,
                        storage_ref=f"{application.id}/{document_type.id}.pdf",
                        original_filename=f"{document_type.name}.pdf",
                        file_type="application/pdf",
                    )
                )
        db.session.commit()
        return application.id

    return _make
