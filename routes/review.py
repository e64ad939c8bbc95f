"""Reviewer endpoints for document verification and payment validation."""

from __future__ import annotations

from flask import Blueprint, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from models import db
from models.document_upload import DocumentUpload
from models.review_issue import KIND_MEDICAL_REFERRAL, KIND_REJECTION
from services import payments, review
from services.access import load_reviewable_application, require_reviewer
from services.errors import ResourceNotFound
from storage.local_storage import LocalStorage
from utils.identity import current_user
from utils.request_validation import parse_json_request, parse_string_list

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/applications", methods=["GET"])
@jwt_required()
def list_applications():
    """List non-draft applications in the reviewer's job categories."""

    reviewer = require_reviewer(current_user())
    applications = review.list_applications(reviewer, status=request.args.get("status"))
    return jsonify({"applications": [application.to_dict() for application in applications]})


@admin_bp.route("/applications/<int:application_id>", methods=["GET"])
@jwt_required()
def get_application(application_id: int):
    reviewer = require_reviewer(current_user())
    return jsonify(review.application_detail(reviewer, application_id))


@admin_bp.route("/documents/<int:upload_id>/file", methods=["GET"])
@jwt_required()
def download_document(upload_id: int):
    """Stream a stored document to a reviewer."""

    reviewer = current_user()
    upload = db.session.get(DocumentUpload, upload_id)
    if upload is None:
        raise ResourceNotFound("Document upload not found.")
    load_reviewable_application(reviewer, upload.application_id)

    storage = LocalStorage.from_app()
    return send_file(
        storage.open(upload.storage_ref),
        mimetype=upload.file_type or "application/octet-stream",
        as_attachment=True,
        download_name=upload.original_filename,
    )


@admin_bp.route("/documents/<int:upload_id>/verify", methods=["POST"])
@jwt_required()
def verify_document(upload_id: int):
    upload = review.verify_document(current_user(), upload_id)
    db.session.commit()
    return jsonify(upload.to_dict())


def _flag(upload_id: int, kind: str):
    data = parse_json_request(request, required_keys=["category", "reason"])
    result = review.flag_document(
        current_user(),
        upload_id,
        kind=kind,
        category=data["category"],
        reason=data["reason"],
        specific_issues=parse_string_list(data.get("specific_issues"), "specific_issues"),
        doctor_name=data.get("doctor_name"),
        clinic_address=data.get("clinic_address"),
    )
    db.session.commit()
    return jsonify(result), 201


@admin_bp.route("/documents/<int:upload_id>/reject", methods=["POST"])
@jwt_required()
def reject_document(upload_id: int):
    """Reject a document; the applicant hears about it on the next notify call."""

    return _flag(upload_id, KIND_REJECTION)


@admin_bp.route("/documents/<int:upload_id>/refer", methods=["POST"])
@jwt_required()
def refer_document(upload_id: int):
    """Refer a document for medical management."""

    return _flag(upload_id, KIND_MEDICAL_REFERRAL)


@admin_bp.route("/applications/<int:application_id>/notify", methods=["POST"])
@jwt_required()
def send_notifications(application_id: int):
    result = review.send_issue_notifications(current_user(), application_id)
    db.session.commit()
    return jsonify(result)


@admin_bp.route("/applications/<int:application_id>/approve", methods=["POST"])
@jwt_required()
def approve_application(application_id: int):
    application = review.approve_application(current_user(), application_id)
    db.session.commit()
    return jsonify(application.to_dict())


@admin_bp.route("/payments/pending", methods=["GET"])
@jwt_required()
def pending_payments():
    return jsonify({"payments": payments.list_pending_validation(current_user())})


@admin_bp.route("/payments/<int:payment_id>/validate", methods=["POST"])
@jwt_required()
def validate_payment(payment_id: int):
    payment = payments.validate_payment(current_user(), payment_id)
    db.session.commit()
    return jsonify(payment.to_dict())


@admin_bp.route("/payments/<int:payment_id>/reject", methods=["POST"])
@jwt_required()
def reject_payment(payment_id: int):
    data = parse_json_request(request, required_keys=["category", "reason"])
    rejection = payments.reject_payment(
        current_user(),
        payment_id,
        category=data["category"],
        reason=data["reason"],
        specific_issues=parse_string_list(data.get("specific_issues"), "specific_issues"),
    )
    db.session.commit()
    return jsonify(rejection.to_dict()), 201
