"""Tests for the User model helpers."""

from models import db
from models.user import User


def test_category_visibility_predicate(app):
    """Admins without managed categories see everything; others only their own."""

    with app.app_context():
        super_admin = User(external_id="sa", email="sa@example.com", role="admin")
        scoped = User(
            external_id="scoped",
            email="scoped@example.com",
            role="admin",
            managed_categories=[2, 5],
        )
        db.session.add_all([super_admin, scoped])
        db.session.commit()
        db.session.refresh(scoped)

        assert super_admin.is_super_admin is True
        assert super_admin.can_see_category(7) is True
        assert scoped.is_super_admin is False
        assert scoped.can_see_category(5) is True
        assert scoped.can_see_category(7) is False


def test_reviewer_roles_and_display_name(app):
    with app.app_context():
        inspector = User(external_id="insp", email="insp@example.com", role="inspector")
        applicant = User(external_id="app", email="app@example.com", full_name="Ana Cruz")
        db.session.add_all([inspector, applicant])
        db.session.commit()

        assert inspector.is_reviewer is True
        assert applicant.is_reviewer is False
        assert applicant.role == "applicant"
        assert applicant.managed_categories == []
        assert inspector.display_name == "insp@example.com"
        assert applicant.display_name == "Ana Cruz"
