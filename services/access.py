"""Ownership and reviewer checks shared by the workflow services."""

from __future__ import annotations

from models import db
from models.application import Application
from models.payment import Payment
from models.user import User

from .errors import (
    ApplicationNotFound,
    NotAuthenticated,
    NotAuthorized,
    NotOwner,
    ResourceNotFound,
)


def require_user(user: User | None) -> User:
    if user is None:
        raise NotAuthenticated()
    return user


def require_reviewer(user: User | None) -> User:
    require_user(user)
    if not user.is_reviewer:
        raise NotAuthorized("Admin or inspector privileges required.")
    return user


def get_application(application_id: int, lock: bool = False) -> Application:
    """Load an application, optionally taking a row lock for the transaction."""

    if lock:
        application = db.session.get(
            Application, application_id, with_for_update=True, populate_existing=True
        )
    else:
        application = db.session.get(Application, application_id)
    if application is None:
        raise ApplicationNotFound()
    return application


def load_owned_application(user: User | None, application_id: int, lock: bool = False) -> Application:
    require_user(user)
    application = get_application(application_id, lock=lock)
    if application.user_id != user.id:
        raise NotOwner()
    return application


def load_reviewable_application(user: User | None, application_id: int, lock: bool = False) -> Application:
    require_reviewer(user)
    application = get_application(application_id, lock=lock)
    if not user.can_see_category(application.job_category_id):
        raise NotAuthorized("You do not manage this job category.")
    return application


def load_visible_application(user: User | None, application_id: int, lock: bool = False) -> Application:
    """Reviewers see their categories; applicants see their own applications."""

    require_user(user)
    if user.is_reviewer:
        return load_reviewable_application(user, application_id, lock=lock)
    return load_owned_application(user, application_id, lock=lock)


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise ResourceNotFound("Payment not found.")
    return payment
