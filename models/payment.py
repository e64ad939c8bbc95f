"""Payment records, payment rejections and the payment audit log."""

from decimal import Decimal

from . import db, utcnow


PAYMENT_PENDING = "Pending"
PAYMENT_PROCESSING = "Processing"
PAYMENT_COMPLETE = "Complete"
PAYMENT_FAILED = "Failed"
PAYMENT_CANCELLED = "Cancelled"
PAYMENT_EXPIRED = "Expired"
PAYMENT_REFUNDED = "Refunded"

PAYMENT_STATUSES = (
    PAYMENT_PENDING,
    PAYMENT_PROCESSING,
    PAYMENT_COMPLETE,
    PAYMENT_FAILED,
    PAYMENT_CANCELLED,
    PAYMENT_EXPIRED,
    PAYMENT_REFUNDED,
)

METHOD_ONLINE_CHECKOUT = "OnlineCheckout"
PAYMENT_METHODS = ("Gcash", "Maya", "BaranggayHall", "CityHall", METHOD_ONLINE_CHECKOUT)

PAYMENT_REJECTION_CATEGORIES = (
    "invalid_receipt",
    "wrong_amount",
    "unreadable_receipt",
    "duplicate_reference",
    "other",
)


def _as_float(value):
    return float(value) if isinstance(value, Decimal) else value


class Payment(db.Model):
    """A payment for an application.

    At most one row per application has ``is_current`` set; earlier attempts
    are kept and point at the payment that replaced them.
    """

    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "net_amount = amount + service_fee", name="ck_payments_net_amount"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True
    )
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    service_fee = db.Column(db.Numeric(10, 2), nullable=False)
    net_amount = db.Column(db.Numeric(10, 2), nullable=False)
    method = db.Column(db.Enum(*PAYMENT_METHODS, name="payment_method"), nullable=False)
    reference_number = db.Column(db.String(128), nullable=False)
    status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name="payment_status"),
        nullable=False,
        default=PAYMENT_PENDING,
        index=True,
    )
    gateway_payment_id = db.Column(db.String(255), nullable=True, unique=True)
    gateway_checkout_id = db.Column(db.String(255), nullable=True, unique=True)
    checkout_url = db.Column(db.String(1024), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    is_current = db.Column(
        db.Boolean, nullable=False, default=True, server_default=db.true()
    )
    superseded_by_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    application = db.relationship(
        "Application", backref=db.backref("payments", lazy="dynamic")
    )

    @property
    def gateway_reference(self) -> str | None:
        return self.gateway_payment_id or self.gateway_checkout_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "amount": _as_float(self.amount),
            "service_fee": _as_float(self.service_fee),
            "net_amount": _as_float(self.net_amount),
            "method": self.method,
            "reference_number": self.reference_number,
            "status": self.status,
            "gateway_payment_id": self.gateway_payment_id,
            "gateway_checkout_id": self.gateway_checkout_id,
            "checkout_url": self.checkout_url,
            "failure_reason": self.failure_reason,
            "is_current": self.is_current,
            "superseded_by_id": self.superseded_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PaymentRejection(db.Model):
    """An admin's rejection of a submitted payment."""

    __tablename__ = "payment_rejections"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=False, index=True
    )
    payment_id = db.Column(
        db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True
    )
    category = db.Column(db.String(64), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    specific_issues = db.Column(db.JSON, nullable=False, default=list)
    attempt_number = db.Column(db.Integer, nullable=False)
    was_replaced = db.Column(
        db.Boolean, nullable=False, default=False, server_default=db.false()
    )
    replacement_payment_id = db.Column(
        db.Integer, db.ForeignKey("payments.id"), nullable=True
    )
    replaced_at = db.Column(db.DateTime, nullable=True)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    rejected_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "application_id": self.application_id,
            "payment_id": self.payment_id,
            "category": self.category,
            "reason": self.reason,
            "specific_issues": list(self.specific_issues or []),
            "attempt_number": self.attempt_number,
            "was_replaced": self.was_replaced,
            "replacement_payment_id": self.replacement_payment_id,
            "replaced_at": self.replaced_at.isoformat() if self.replaced_at else None,
            "rejected_by": self.rejected_by,
            "rejected_at": self.rejected_at.isoformat() if self.rejected_at else None,
        }


class PaymentLog(db.Model):
    """Audit trail for payment state changes and gateway traffic."""

    __tablename__ = "payment_logs"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(
        db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True
    )
    event_type = db.Column(db.String(64), nullable=False)
    gateway_payment_id = db.Column(db.String(255), nullable=True)
    gateway_checkout_id = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Numeric(10, 2), nullable=True)
    currency = db.Column(db.String(8), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
