"""User model definition."""

from . import db, utcnow


USER_ROLES = ("applicant", "admin", "inspector")
REVIEWER_ROLES = ("admin", "inspector")


class User(db.Model):
    """A local user record mirrored from the external identity provider."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(
        db.String(32),
        nullable=False,
        default="applicant",
        server_default=db.text("'applicant'"),
    )
    managed_categories = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    @property
    def is_super_admin(self) -> bool:
        """Admins without managed categories see every category."""

        return self.role == "admin" and not self.managed_categories

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    def can_see_category(self, category_id: int | None) -> bool:
        """Return True if this admin manages the given job category."""

        if not self.managed_categories:
            return True
        return category_id in self.managed_categories

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<User {self.external_id} role={self.role}>"
