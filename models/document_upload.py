"""DocumentUpload model definition."""

from . import db, utcnow


REVIEW_PENDING = "Pending"
REVIEW_VERIFIED = "Verified"
REVIEW_REJECTED = "Rejected"
REVIEW_REFERRED = "Referred"
REVIEW_CLASSIFIED = "Classified"

REVIEW_STATUSES = (
    REVIEW_PENDING,
    REVIEW_VERIFIED,
    REVIEW_REJECTED,
    REVIEW_REFERRED,
    REVIEW_CLASSIFIED,
)


class DocumentUpload(db.Model):
    """An uploaded document for one (application, document type) pair.

    Only one row per pair is current; resubmissions insert a new row and
    flip ``is_current`` on the old one so earlier files stay referenced.
    """

    __tablename__ = "document_uploads"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id"), nullable=False
    )
    storage_ref = db.Column(db.String(512), nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(128), nullable=False)
    review_status = db.Column(
        db.Enum(*REVIEW_STATUSES, name="document_review_status"),
        nullable=False,
        default=REVIEW_PENDING,
        server_default=db.text("'Pending'"),
    )
    is_current = db.Column(
        db.Boolean, nullable=False, default=True, server_default=db.true()
    )
    reviewer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    admin_remarks = db.Column(db.Text, nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    extracted_text = db.Column(db.Text, nullable=True)
    classification = db.Column(db.JSON, nullable=True)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    application = db.relationship(
        "Application", backref=db.backref("document_uploads", lazy="dynamic")
    )
    document_type = db.relationship("DocumentType")

    def __repr__(self) -> str:
        return (
            f"<DocumentUpload id={self.id} application_id={self.application_id} "
            f"status={self.review_status}>"
        )

    def to_dict(self) -> dict:
        """Serialize the upload into a dictionary."""

        return {
            "id": self.id,
            "application_id": self.application_id,
            "document_type_id": self.document_type_id,
            "document_type": self.document_type.name if self.document_type else None,
            "storage_ref": self.storage_ref,
            "original_filename": self.original_filename,
            "file_type": self.file_type,
            "review_status": self.review_status,
            "is_current": self.is_current,
            "reviewer_id": self.reviewer_id,
            "admin_remarks": self.admin_remarks,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
