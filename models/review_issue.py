"""Ledger of document rejections and medical referrals."""

from . import db, utcnow


KIND_REJECTION = "rejection"
KIND_MEDICAL_REFERRAL = "medical_referral"
ISSUE_KINDS = (KIND_REJECTION, KIND_MEDICAL_REFERRAL)

REJECTION_CATEGORIES = (
    "quality_issue",
    "wrong_document",
    "expired_document",
    "incomplete_document",
    "invalid_document",
    "format_issue",
    "other",
)

MEDICAL_REFERRAL_CATEGORIES = (
    "abnormal_xray",
    "elevated_urinalysis",
    "positive_stool",
    "positive_drug_test",
    "neuro_exam_failed",
    "hepatitis_consultation",
    "other_medical_concern",
)


class ReviewIssue(db.Model):
    """One rejection or medical referral of a document.

    Rows are append-only except for the single resubmission patch
    (``was_replaced``) and the notification drain (``notification_sent``).
    Attempt numbers are shared across both kinds for a document type.
    """

    __tablename__ = "review_issues"
    __table_args__ = (
        db.UniqueConstraint(
            "application_id",
            "document_type_id",
            "attempt_number",
            name="uq_review_issue_attempt",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id"), nullable=False
    )
    document_upload_id = db.Column(
        db.Integer, db.ForeignKey("document_uploads.id"), nullable=False
    )
    kind = db.Column(db.Enum(*ISSUE_KINDS, name="review_issue_kind"), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    specific_issues = db.Column(db.JSON, nullable=False, default=list)
    doctor_name = db.Column(db.String(255), nullable=True)
    clinic_address = db.Column(db.String(512), nullable=True)
    attempt_number = db.Column(db.Integer, nullable=False)
    was_replaced = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.false()
    )
    replacement_upload_id = db.Column(
        db.Integer, db.ForeignKey("document_uploads.id"), nullable=True
    )
    replaced_at = db.Column(db.DateTime, nullable=True)
    notification_sent = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.false()
    )
    notification_sent_at = db.Column(db.DateTime, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    document_type = db.relationship("DocumentType")

    @property
    def is_medical_referral(self) -> bool:
        return self.kind == KIND_MEDICAL_REFERRAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "document_type_id": self.document_type_id,
            "document_upload_id": self.document_upload_id,
            "kind": self.kind,
            "category": self.category,
            "reason": self.reason,
            "specific_issues": list(self.specific_issues or []),
            "doctor_name": self.doctor_name,
            "clinic_address": self.clinic_address,
            "attempt_number": self.attempt_number,
            "was_replaced": self.was_replaced,
            "replacement_upload_id": self.replacement_upload_id,
            "replaced_at": self.replaced_at.isoformat() if self.replaced_at else None,
            "notification_sent": self.notification_sent,
            "notification_sent_at": (
                self.notification_sent_at.isoformat()
                if self.notification_sent_at
                else None
            ),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
