"""Notification model."""

from . import db, utcnow


class Notification(db.Model):
    """A message addressed to one user; delivery happens elsewhere."""

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id"), nullable=True, index=True
    )
    notification_type = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    action_url = db.Column(db.String(512), nullable=True)
    job_category_id = db.Column(
        db.Integer, db.ForeignKey("job_categories.id"), nullable=True
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "application_id": self.application_id,
            "notification_type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "action_url": self.action_url,
            "job_category_id": self.job_category_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
