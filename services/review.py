"""Application submission and document review state machine."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import IntegrityError

from models import db, utcnow
from models.application import (
    STATUS_APPROVED,
    STATUS_DRAFT,
    STATUS_FOR_ORIENTATION,
    STATUS_MEDICAL_REFERRAL,
    STATUS_NEEDS_REVISION,
    STATUS_PENDING_PAYMENT,
    STATUS_PERMANENTLY_REJECTED,
    STATUS_SUBMITTED,
    STATUS_UNDER_REVIEW,
    Application,
)
from models.document_upload import (
    REVIEW_PENDING,
    REVIEW_REFERRED,
    REVIEW_REJECTED,
    REVIEW_VERIFIED,
    DocumentUpload,
)
from models.job_category import DocumentType, JobCategory, JobCategoryDocument
from models.review_issue import (
    ISSUE_KINDS,
    KIND_MEDICAL_REFERRAL,
    MEDICAL_REFERRAL_CATEGORIES,
    REJECTION_CATEGORIES,
    ReviewIssue,
)
from models.user import User

from . import history, notifications
from .access import (
    load_owned_application,
    load_reviewable_application,
    load_visible_application,
    require_user,
)
from .errors import (
    AlreadySubmitted,
    AttemptLimitReached,
    InvalidState,
    MissingRequiredDocument,
    ResourceNotFound,
    ValidationFailed,
)
from .payments import current_payment, new_payment
from .settings import WorkflowSettings, get_settings

logger = logging.getLogger(__name__)

CLOSED_FOR_REVIEW = (STATUS_DRAFT, STATUS_APPROVED, STATUS_PERMANENTLY_REJECTED)

# Reached only once the application fee has been confirmed.
APPROVABLE_STATUSES = (STATUS_UNDER_REVIEW, STATUS_FOR_ORIENTATION)


def permanent_closure_message(document_name: str, settings: WorkflowSettings) -> str:
    return (
        f"Maximum resubmission attempts ({settings.max_document_attempts}) reached "
        f"for {document_name}. This application is permanently closed and no "
        "further resubmission is possible. Please start a new application."
    )


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


def _get_upload(upload_id: int) -> DocumentUpload:
    upload = db.session.get(DocumentUpload, upload_id)
    if upload is None:
        raise ResourceNotFound("Document upload not found.")
    return upload


def _get_document_type(application: Application, document_type_id: int) -> DocumentType:
    requirement = JobCategoryDocument.query.filter_by(
        job_category_id=application.job_category_id,
        document_type_id=document_type_id,
    ).first()
    if requirement is None:
        raise ResourceNotFound("Document type not found for this job category.")
    return requirement.document_type


def current_uploads(application_id: int) -> list[DocumentUpload]:
    return (
        DocumentUpload.query.filter_by(application_id=application_id, is_current=True)
        .order_by(DocumentUpload.id.asc())
        .all()
    )


def _current_upload(application_id: int, document_type_id: int) -> DocumentUpload | None:
    return DocumentUpload.query.filter_by(
        application_id=application_id,
        document_type_id=document_type_id,
        is_current=True,
    ).first()


def _store_upload(
    application: Application,
    document_type: DocumentType,
    *,
    storage_ref: str,
    original_filename: str,
    file_type: str,
    now,
) -> DocumentUpload:
    previous = _current_upload(application.id, document_type.id)
    if previous is not None:
        previous.is_current = False
    upload = DocumentUpload(
        application_id=application.id,
        document_type_id=document_type.id,
        storage_ref=storage_ref,
        original_filename=original_filename,
        file_type=file_type or "application/octet-stream",
        review_status=REVIEW_PENDING,
        uploaded_at=now,
    )
    db.session.add(upload)
    db.session.flush()
    return upload


# ---------------------------------------------------------------------------
# Applicant operations
# ---------------------------------------------------------------------------


def create_draft(user: User | None, job_category_id: int, now=None) -> Application:
    require_user(user)
    if db.session.get(JobCategory, job_category_id) is None:
        raise ResourceNotFound("Job category not found.")
    now = now or utcnow()
    application = Application(
        user_id=user.id,
        job_category_id=job_category_id,
        status=STATUS_DRAFT,
        created_at=now,
        updated_at=now,
    )
    db.session.add(application)
    db.session.flush()
    return application


def upload_document(
    user: User | None,
    application_id: int,
    document_type_id: int,
    *,
    storage_ref: str,
    original_filename: str,
    file_type: str,
    now=None,
) -> DocumentUpload:
    """Attach a document to a draft application, replacing any earlier upload."""

    application = load_owned_application(user, application_id)
    if application.status != STATUS_DRAFT:
        raise InvalidState(
            "Documents can only be uploaded while the application is a draft. "
            "Use resubmission for flagged documents."
        )
    document_type = _get_document_type(application, document_type_id)
    return _store_upload(
        application,
        document_type,
        storage_ref=storage_ref,
        original_filename=original_filename,
        file_type=file_type,
        now=now or utcnow(),
    )


def submit_application(
    user: User | None,
    application_id: int,
    *,
    payment_method: str | None = None,
    reference_number: str | None = None,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Submit a draft, either paying now or deferring payment."""

    settings = get_settings(settings)
    now = now or utcnow()
    application = load_owned_application(user, application_id, lock=True)

    if application.status != STATUS_DRAFT:
        raise AlreadySubmitted()

    uploaded = {upload.document_type_id for upload in current_uploads(application.id)}
    for document_type in application.job_category.required_document_types():
        if document_type.id not in uploaded:
            raise MissingRequiredDocument(document_type.name)

    deferred = not payment_method and not reference_number
    payment = None
    if deferred:
        application.payment_deadline = now + settings.payment_deadline
        application.set_status(STATUS_PENDING_PAYMENT, now)
        notifications.notify_applicant(
            application,
            notification_type="Payment",
            title="Application Submitted - Payment Required",
            message=(
                "Your application has been submitted successfully! Please complete "
                f"the payment of {settings.total_fee} within "
                f"{settings.payment_deadline.days} days to proceed with processing."
            ),
        )
    else:
        if not payment_method or not reference_number:
            raise ValidationFailed(
                "Both payment_method and reference_number are required to pay now."
            )
        payment = new_payment(
            application,
            amount=settings.base_fee,
            service_fee=settings.service_fee,
            net_amount=settings.total_fee,
            method=payment_method,
            reference_number=reference_number,
            now=now,
        )
        application.set_status(STATUS_SUBMITTED, now)
        notifications.notify_applicant(
            application,
            notification_type="PaymentReceived",
            title="Application Submitted",
            message=(
                f"Application submitted successfully! Payment of {settings.total_fee} "
                f"via {payment_method} is being processed. Reference: {reference_number}"
            ),
        )

    logger.info(
        "Application %s submitted (%s)",
        application.id,
        "payment deferred" if deferred else "paid now",
    )
    return {
        "application": application.to_dict(),
        "payment": payment.to_dict() if payment else None,
        "requires_orientation": application.job_category.require_orientation,
        "total_amount": float(settings.total_fee),
    }


def resubmit_document(
    user: User | None,
    application_id: int,
    document_type_id: int,
    *,
    storage_ref: str,
    original_filename: str,
    file_type: str,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Replace a flagged document and reopen the application for review."""

    settings = get_settings(settings)
    now = now or utcnow()
    application = load_owned_application(user, application_id, lock=True)
    document_type = _get_document_type(application, document_type_id)

    # Recomputed under the application lock rather than trusted from the client.
    attempts = history.attempt_count(application.id, document_type.id)
    if (
        application.status == STATUS_PERMANENTLY_REJECTED
        or attempts >= settings.closing_attempt
    ):
        raise AttemptLimitReached(permanent_closure_message(document_type.name, settings))

    issue = history.latest_unresolved(application.id, document_type.id)
    if issue is None:
        raise InvalidState(
            f"No outstanding rejection or referral found for {document_type.name}."
        )

    upload = _store_upload(
        application,
        document_type,
        storage_ref=storage_ref,
        original_filename=original_filename,
        file_type=file_type,
        now=now,
    )
    history.mark_replaced(issue, upload.id, now)

    if history.has_unresolved(application.id):
        new_status = application.status
    else:
        new_status = STATUS_UNDER_REVIEW
    application.set_status(new_status, now)

    notifications.notify_admins(
        application,
        notification_type="DocumentResubmission",
        title="Document Resubmitted",
        message=(
            f"{user.display_name} has resubmitted their {document_type.name}. "
            "Please review."
        ),
        action_url=f"/admin/applications/{application.id}/review",
    )

    return {
        "upload": upload.to_dict(),
        "issue": issue.to_dict(),
        "application_status": application.status,
        "attempt_number": attempts,
        "remaining_attempts": max(0, settings.max_document_attempts - attempts),
    }


# ---------------------------------------------------------------------------
# Reviewer operations
# ---------------------------------------------------------------------------


def verify_document(reviewer: User | None, upload_id: int, now=None) -> DocumentUpload:
    upload = _get_upload(upload_id)
    application = load_reviewable_application(reviewer, upload.application_id)
    if application.status in CLOSED_FOR_REVIEW:
        raise InvalidState(f"Cannot review documents of a {application.status} application.")
    if not upload.is_current:
        raise InvalidState("Only the current upload of a document can be reviewed.")

    upload.review_status = REVIEW_VERIFIED
    upload.admin_remarks = None
    upload.reviewer_id = reviewer.id
    upload.reviewed_at = now or utcnow()
    return upload


def _validate_flag(
    kind: str,
    category: str | None,
    reason: str | None,
    doctor_name: str | None,
) -> None:
    if kind not in ISSUE_KINDS:
        raise ValidationFailed(f"kind must be one of: {', '.join(ISSUE_KINDS)}.")
    allowed = MEDICAL_REFERRAL_CATEGORIES if kind == KIND_MEDICAL_REFERRAL else REJECTION_CATEGORIES
    if category not in allowed:
        raise ValidationFailed(f"category must be one of: {', '.join(allowed)}.")
    if not reason or not reason.strip():
        raise ValidationFailed("A reason is required.")
    if kind == KIND_MEDICAL_REFERRAL and not doctor_name:
        raise ValidationFailed("Doctor name is required for medical referrals.")


def flag_document(
    reviewer: User | None,
    upload_id: int,
    *,
    kind: str,
    category: str,
    reason: str,
    specific_issues: Iterable[str] = (),
    doctor_name: str | None = None,
    clinic_address: str | None = None,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Reject a document or refer it for medical management."""

    settings = get_settings(settings)
    now = now or utcnow()
    _validate_flag(kind, category, reason, doctor_name)

    upload = _get_upload(upload_id)
    application = load_reviewable_application(reviewer, upload.application_id, lock=True)
    if application.status in CLOSED_FOR_REVIEW:
        raise InvalidState(f"Cannot review documents of a {application.status} application.")
    if not upload.is_current:
        raise InvalidState("Only the current upload of a document can be reviewed.")
    if upload.review_status in (REVIEW_REJECTED, REVIEW_REFERRED):
        raise InvalidState("Document is already rejected or referred.")

    document_name = upload.document_type.name
    attempt_number = history.attempt_count(application.id, upload.document_type_id) + 1
    closes_application = attempt_number >= settings.closing_attempt

    issue = ReviewIssue(
        application_id=application.id,
        document_type_id=upload.document_type_id,
        document_upload_id=upload.id,
        kind=kind,
        category=category,
        reason=reason.strip(),
        specific_issues=[str(item) for item in specific_issues],
        doctor_name=doctor_name if kind == KIND_MEDICAL_REFERRAL else None,
        clinic_address=clinic_address if kind == KIND_MEDICAL_REFERRAL else None,
        attempt_number=attempt_number,
        created_by=reviewer.id,
        created_at=now,
    )
    db.session.add(issue)
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        raise InvalidState(
            "This document was reviewed concurrently. Reload and try again."
        ) from exc

    upload.review_status = REVIEW_REFERRED if kind == KIND_MEDICAL_REFERRAL else REVIEW_REJECTED
    upload.reviewer_id = reviewer.id
    upload.reviewed_at = now

    if closes_application:
        closure = permanent_closure_message(document_name, settings)
        upload.admin_remarks = closure
        application.admin_remarks = closure
        application.set_status(STATUS_PERMANENTLY_REJECTED, now)
        notifications.notify_applicant(
            application,
            notification_type="application_permanently_rejected",
            title="Application Permanently Closed - Maximum Attempts Reached",
            message=f"{closure}\n\nLast issue: {issue.reason}",
        )
        history.mark_notified(issue, now)
        notifications.notify_admins(
            application,
            notification_type="application_permanently_rejected_admin",
            title="Application Permanently Closed",
            message=(
                f"Application {application.id} was closed after "
                f"{settings.max_document_attempts} failed attempts for {document_name}."
            ),
            action_url=f"/admin/applications/{application.id}/review",
        )
        logger.info(
            "Application %s permanently closed on attempt %s for document type %s",
            application.id,
            attempt_number,
            upload.document_type_id,
        )
    else:
        if kind == KIND_MEDICAL_REFERRAL:
            upload.admin_remarks = (
                f"Medical finding detected - please see {doctor_name} at "
                f"{clinic_address or 'the designated clinic'}"
            )
            application.set_status(STATUS_MEDICAL_REFERRAL, now)
        else:
            upload.admin_remarks = issue.reason
            application.set_status(STATUS_NEEDS_REVISION, now)
        notifications.notify_admins(
            application,
            notification_type=(
                "document_referral_medical"
                if kind == KIND_MEDICAL_REFERRAL
                else "document_issue_flagged"
            ),
            title=(
                "Medical Referral Created"
                if kind == KIND_MEDICAL_REFERRAL
                else "Document Issue Flagged"
            ),
            message=(
                f"{reviewer.display_name} flagged {document_name} on application "
                f"{application.id}: {issue.reason}"
            ),
            action_url=f"/admin/applications/{application.id}/review",
            exclude=[reviewer.id],
        )

    return {
        "issue": issue.to_dict(),
        "attempt_number": attempt_number,
        "max_attempts_reached": closes_application,
        "is_final_attempt": attempt_number == settings.max_document_attempts,
        "remaining_attempts": max(0, settings.max_document_attempts - attempt_number),
        "application_status": application.status,
    }


def compose_issue_notification(issue: ReviewIssue, settings: WorkflowSettings) -> dict:
    """Build the applicant-facing notification for one flagged document."""

    document_name = issue.document_type.name if issue.document_type else "Document"
    specifics = ""
    if issue.specific_issues:
        specifics = "\n\nSpecific Issues:\n" + "\n".join(
            f"• {item}" for item in issue.specific_issues
        )
    max_attempts = settings.max_document_attempts

    if issue.is_medical_referral:
        title = "📋 Medical Finding Detected"
        message = (
            f"Medical Finding: {document_name}\n\n{issue.reason}{specifics}\n\n"
            f"Please visit {issue.doctor_name} at "
            f"{issue.clinic_address or 'the designated clinic'} for consultation. "
            "Your application will continue once you receive medical clearance."
        )
        notification_type = "document_referred_medical"
        action_url = f"/applications/{issue.application_id}/medical-referral"
    else:
        title = "📄 Document Needs Correction"
        message = (
            f"Document Issue: {document_name}\n\n{issue.reason}{specifics}\n\n"
            f"Please upload a corrected version of your {document_name}."
        )
        notification_type = "document_needs_correction"
        action_url = f"/applications/{issue.application_id}/resubmit/{issue.document_type_id}"

    message += f"\n\nThis is attempt {issue.attempt_number} of {max_attempts}."
    remaining = max_attempts - issue.attempt_number
    if remaining <= 0:
        message += (
            f"\n\n🚨 FINAL ATTEMPT: This is your last chance (attempt "
            f"{issue.attempt_number} of {max_attempts}). If this document is flagged "
            "again, your application will be permanently closed."
        )
    elif remaining == 1:
        message += (
            "\n\n⚠️ Warning: 1 attempt remaining. Please review the requirements "
            "carefully before resubmitting."
        )

    return {
        "notification_type": notification_type,
        "title": title,
        "message": message,
        "action_url": action_url,
    }


def send_issue_notifications(
    reviewer: User | None,
    application_id: int,
    settings: WorkflowSettings | None = None,
    now=None,
) -> dict:
    """Notify the applicant about every flagged document not yet announced."""

    settings = get_settings(settings)
    now = now or utcnow()
    application = load_reviewable_application(reviewer, application_id)

    pending = history.pending_notifications(application.id)
    medical = 0
    for issue in pending:
        notifications.notify_applicant(application, **compose_issue_notification(issue, settings))
        history.mark_notified(issue, now)
        if issue.is_medical_referral:
            medical += 1

    return {
        "notifications_sent": len(pending),
        "medical_referrals": medical,
        "document_issues": len(pending) - medical,
    }


def approve_application(reviewer: User | None, application_id: int, now=None) -> Application:
    now = now or utcnow()
    application = load_reviewable_application(reviewer, application_id, lock=True)
    if application.status not in APPROVABLE_STATUSES:
        raise InvalidState(f"Cannot approve a {application.status} application.")

    uploads = current_uploads(application.id)
    if not uploads:
        raise InvalidState("Application has no documents to approve.")
    for upload in uploads:
        if upload.review_status != REVIEW_VERIFIED:
            raise InvalidState(f"{upload.document_type.name} has not been verified.")

    application.approved_at = now
    application.set_status(STATUS_APPROVED, now)
    notifications.notify_applicant(
        application,
        notification_type="ApplicationApproved",
        title="Application Approved",
        message="Your health card application has been approved.",
    )
    return application


def document_history(user: User | None, application_id: int) -> dict:
    """Rejection and referral projections plus per-document attempt counts."""

    application = load_visible_application(user, application_id)

    return {
        "application_id": application.id,
        "rejections": [issue.to_dict() for issue in history.rejection_history(application.id)],
        "referrals": [issue.to_dict() for issue in history.referral_history(application.id)],
        "attempts": {
            str(document_type_id): count
            for document_type_id, count in history.attempt_counts(application.id).items()
        },
    }


def application_detail(user: User | None, application_id: int) -> dict:
    application = load_visible_application(user, application_id)
    payment = current_payment(application.id)
    return {
        "application": application.to_dict(),
        "job_category": application.job_category.to_dict(),
        "documents": [upload.to_dict() for upload in current_uploads(application.id)],
        "payment": payment.to_dict() if payment else None,
        "attempts": {
            str(document_type_id): count
            for document_type_id, count in history.attempt_counts(application.id).items()
        },
    }


def list_applications(user: User | None, status: str | None = None) -> list[Application]:
    """Own applications for applicants; managed categories for reviewers."""

    require_user(user)
    query = Application.query
    if status:
        query = query.filter(Application.status == status)
    if user.is_reviewer:
        query = query.filter(Application.status != STATUS_DRAFT)
        if user.managed_categories:
            query = query.filter(Application.job_category_id.in_(user.managed_categories))
    else:
        query = query.filter(Application.user_id == user.id)
    return query.order_by(Application.updated_at.desc(), Application.id.desc()).all()


def list_job_categories() -> list[dict]:
    return [
        {
            **category.to_dict(),
            "requirements": [
                {
                    "document_type": requirement.document_type.to_dict(),
                    "is_required": requirement.is_required,
                }
                for requirement in category.requirements
            ],
        }
        for category in JobCategory.query.order_by(JobCategory.id).all()
    ]
