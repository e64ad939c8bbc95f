"""Applicant-facing application endpoints: drafts, uploads, submission, resubmission."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from werkzeug.exceptions import BadRequest

from models import db
from services import review
from services.access import load_owned_application
from storage.local_storage import LocalStorage
from utils.identity import current_user
from utils.request_validation import parse_int, parse_json_request, require_document_file

applications_bp = Blueprint("applications", __name__)


def _store_document(user, application_id: int) -> tuple[LocalStorage, str, dict]:
    """Save the request's document once the caller is known to own the application."""

    load_owned_application(user, application_id)
    file = require_document_file(request)
    storage = LocalStorage.from_app()
    handle = storage.save(file, file.filename or "document", prefix=str(application_id))
    metadata = {
        "storage_ref": handle,
        "original_filename": file.filename or "document",
        "file_type": file.mimetype or "application/octet-stream",
    }
    return storage, handle, metadata


@applications_bp.route("/job-categories", methods=["GET"])
@jwt_required()
def list_job_categories():
    current_user()
    return jsonify({"job_categories": review.list_job_categories()})


@applications_bp.route("", methods=["POST"])
@jwt_required()
def create_application():
    """Start a draft application for a job category."""

    user = current_user()
    data = parse_json_request(request, required_keys=["job_category_id"])
    application = review.create_draft(
        user, parse_int(data["job_category_id"], "job_category_id")
    )
    db.session.commit()
    return jsonify(application.to_dict()), 201


@applications_bp.route("", methods=["GET"])
@jwt_required()
def list_applications():
    user = current_user()
    applications = review.list_applications(user, status=request.args.get("status"))
    return jsonify({"applications": [application.to_dict() for application in applications]})


@applications_bp.route("/<int:application_id>", methods=["GET"])
@jwt_required()
def get_application(application_id: int):
    return jsonify(review.application_detail(current_user(), application_id))


@applications_bp.route("/<int:application_id>/documents", methods=["POST"])
@jwt_required()
def upload_document(application_id: int):
    """Upload (or replace) a document on a draft application."""

    user = current_user()
    document_type_id = request.form.get("document_type_id")
    if document_type_id is None:
        raise BadRequest("document_type_id is required.")
    document_type_id = parse_int(document_type_id, "document_type_id")

    storage, handle, metadata = _store_document(user, application_id)
    try:
        upload = review.upload_document(user, application_id, document_type_id, **metadata)
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.delete(handle)
        raise
    return jsonify(upload.to_dict()), 201


@applications_bp.route("/<int:application_id>/submit", methods=["POST"])
@jwt_required()
def submit_application(application_id: int):
    """Submit a draft, paying now when payment details are supplied."""

    user = current_user()
    data = parse_json_request(request, allow_empty=True) if request.is_json else {}
    result = review.submit_application(
        user,
        application_id,
        payment_method=data.get("payment_method"),
        reference_number=data.get("reference_number"),
    )
    db.session.commit()
    return jsonify(result)


@applications_bp.route(
    "/<int:application_id>/documents/<int:document_type_id>/resubmit",
    methods=["POST"],
)
@jwt_required()
def resubmit_document(application_id: int, document_type_id: int):
    """Replace a rejected or referred document."""

    user = current_user()
    storage, handle, metadata = _store_document(user, application_id)
    try:
        result = review.resubmit_document(user, application_id, document_type_id, **metadata)
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.delete(handle)
        raise
    return jsonify(result), 201


@applications_bp.route("/<int:application_id>/history", methods=["GET"])
@jwt_required()
def document_history(application_id: int):
    return jsonify(review.document_history(current_user(), application_id))
