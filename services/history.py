"""Read and write helpers for the document review ledger.

Rejections and medical referrals share one table; the two historical read
contracts (rejection history, referral history) are kind-filtered views of it.
"""

from __future__ import annotations

from sqlalchemy import func

from models import db, utcnow
from models.review_issue import KIND_MEDICAL_REFERRAL, KIND_REJECTION, ReviewIssue


def _issues_query(application_id: int, document_type_id: int | None = None):
    query = ReviewIssue.query.filter(ReviewIssue.application_id == application_id)
    if document_type_id is not None:
        query = query.filter(ReviewIssue.document_type_id == document_type_id)
    return query


def rejection_history(application_id: int, document_type_id: int | None = None) -> list[ReviewIssue]:
    return (
        _issues_query(application_id, document_type_id)
        .filter(ReviewIssue.kind == KIND_REJECTION)
        .order_by(ReviewIssue.created_at.desc(), ReviewIssue.id.desc())
        .all()
    )


def referral_history(application_id: int, document_type_id: int | None = None) -> list[ReviewIssue]:
    return (
        _issues_query(application_id, document_type_id)
        .filter(ReviewIssue.kind == KIND_MEDICAL_REFERRAL)
        .order_by(ReviewIssue.created_at.desc(), ReviewIssue.id.desc())
        .all()
    )


def attempt_count(application_id: int, document_type_id: int) -> int:
    """Rejections plus referrals recorded for one document type."""

    return (
        db.session.query(func.count(ReviewIssue.id))
        .filter(
            ReviewIssue.application_id == application_id,
            ReviewIssue.document_type_id == document_type_id,
        )
        .scalar()
        or 0
    )


def attempt_counts(application_id: int) -> dict[int, int]:
    rows = (
        db.session.query(ReviewIssue.document_type_id, func.count(ReviewIssue.id))
        .filter(ReviewIssue.application_id == application_id)
        .group_by(ReviewIssue.document_type_id)
        .all()
    )
    return {document_type_id: count for document_type_id, count in rows}


def latest_unresolved(application_id: int, document_type_id: int) -> ReviewIssue | None:
    return (
        _issues_query(application_id, document_type_id)
        .filter(ReviewIssue.was_replaced.is_(False))
        .order_by(ReviewIssue.attempt_number.desc())
        .first()
    )


def has_unresolved(application_id: int) -> bool:
    return (
        _issues_query(application_id)
        .filter(ReviewIssue.was_replaced.is_(False))
        .first()
        is not None
    )


def pending_notifications(application_id: int) -> list[ReviewIssue]:
    return (
        _issues_query(application_id)
        .filter(ReviewIssue.notification_sent.is_(False))
        .order_by(ReviewIssue.id.asc())
        .all()
    )


def mark_replaced(issue: ReviewIssue, replacement_upload_id: int, now=None) -> None:
    issue.was_replaced = True
    issue.replacement_upload_id = replacement_upload_id
    issue.replaced_at = now or utcnow()


def mark_notified(issue: ReviewIssue, now=None) -> None:
    issue.notification_sent = True
    issue.notification_sent_at = now or utcnow()
