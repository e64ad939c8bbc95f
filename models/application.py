"""Application model."""

from . import db, utcnow


STATUS_DRAFT = "Draft"
STATUS_PENDING_PAYMENT = "Pending Payment"
STATUS_SUBMITTED = "Submitted"
STATUS_FOR_PAYMENT_VALIDATION = "For Payment Validation"
STATUS_PAYMENT_REJECTED = "Payment Rejected"
STATUS_FOR_ORIENTATION = "For Orientation"
STATUS_UNDER_REVIEW = "Under Review"
STATUS_NEEDS_REVISION = "Documents Need Revision"
STATUS_MEDICAL_REFERRAL = "Referred for Medical Management"
STATUS_APPROVED = "Approved"
STATUS_PERMANENTLY_REJECTED = "Permanently Rejected"

APPLICATION_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING_PAYMENT,
    STATUS_SUBMITTED,
    STATUS_FOR_PAYMENT_VALIDATION,
    STATUS_PAYMENT_REJECTED,
    STATUS_FOR_ORIENTATION,
    STATUS_UNDER_REVIEW,
    STATUS_NEEDS_REVISION,
    STATUS_MEDICAL_REFERRAL,
    STATUS_APPROVED,
    STATUS_PERMANENTLY_REJECTED,
)

# Statuses from which a payment may be started or retried.
PAYABLE_STATUSES = (
    STATUS_PENDING_PAYMENT,
    STATUS_SUBMITTED,
    STATUS_FOR_PAYMENT_VALIDATION,
    STATUS_PAYMENT_REJECTED,
)


class Application(db.Model):
    """One applicant's end-to-end health card request."""

    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    job_category_id = db.Column(
        db.Integer, db.ForeignKey("job_categories.id"), nullable=False, index=True
    )
    status = db.Column(
        db.Enum(*APPLICATION_STATUSES, name="application_status"),
        nullable=False,
        default=STATUS_DRAFT,
    )
    payment_deadline = db.Column(db.DateTime, nullable=True)
    admin_remarks = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    applicant = db.relationship(
        "User", backref=db.backref("applications", lazy="dynamic")
    )
    job_category = db.relationship("JobCategory")

    def set_status(self, status: str, now=None) -> None:
        """Move the application to ``status`` and stamp ``updated_at``."""

        self.status = status
        self.updated_at = now or utcnow()

    def to_dict(self) -> dict:
        """Serialize the application."""

        return {
            "id": self.id,
            "user_id": self.user_id,
            "job_category_id": self.job_category_id,
            "status": self.status,
            "payment_deadline": (
                self.payment_deadline.isoformat() if self.payment_deadline else None
            ),
            "admin_remarks": self.admin_remarks,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
