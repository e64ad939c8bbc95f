"""Database initialization and model exports."""

from datetime import UTC, datetime

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, matching stored columns."""

    return datetime.now(UTC).replace(tzinfo=None)


# Import models to register them with SQLAlchemy metadata.
from .user import User  # noqa: E402,F401
from .job_category import DocumentType, JobCategory, JobCategoryDocument  # noqa: E402,F401
from .application import Application  # noqa: E402,F401
from .document_upload import DocumentUpload  # noqa: E402,F401
from .review_issue import ReviewIssue  # noqa: E402,F401
from .payment import Payment, PaymentLog, PaymentRejection  # noqa: E402,F401
from .notification import Notification  # noqa: E402,F401

__all__ = [
    "db",
    "utcnow",
    "User",
    "JobCategory",
    "DocumentType",
    "JobCategoryDocument",
    "Application",
    "DocumentUpload",
    "ReviewIssue",
    "Payment",
    "PaymentLog",
    "PaymentRejection",
    "Notification",
]
