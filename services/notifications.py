"""Notification fan-out.

Notifications are best-effort: each row is inserted inside its own savepoint
so a failed insert is logged and rolled back alone, leaving the workflow
transition that triggered it intact.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.application import Application
from models.notification import Notification
from models.user import User

from .errors import NotAuthorized, ResourceNotFound

logger = logging.getLogger(__name__)


def _build_notification(user_id: int, application: Application, **fields) -> Notification:
    return Notification(user_id=user_id, application_id=application.id, **fields)


def _insert(user_id: int, application: Application, **fields) -> Notification | None:
    try:
        with db.session.begin_nested():
            notification = _build_notification(user_id, application, **fields)
            db.session.add(notification)
    except SQLAlchemyError:
        logger.exception(
            "Failed to notify user %s about application %s", user_id, application.id
        )
        return None
    return notification


def admin_audience(application: Application, exclude: Iterable[int] = ()) -> list[User]:
    """Admins who manage the application's job category (or manage everything)."""

    excluded = set(exclude)
    admins = User.query.filter_by(role="admin").order_by(User.id.asc()).all()
    return [
        admin
        for admin in admins
        if admin.id not in excluded and admin.can_see_category(application.job_category_id)
    ]


def notify_applicant(
    application: Application,
    *,
    notification_type: str,
    title: str,
    message: str,
    action_url: str | None = None,
) -> Notification | None:
    return _insert(
        application.user_id,
        application,
        notification_type=notification_type,
        title=title,
        message=message,
        action_url=action_url,
        job_category_id=application.job_category_id,
    )


def notify_admins(
    application: Application,
    *,
    notification_type: str,
    title: str,
    message: str,
    action_url: str | None = None,
    exclude: Iterable[int] = (),
) -> list[Notification]:
    """Insert one notification per admin in the application's audience."""

    sent = []
    for admin in admin_audience(application, exclude=exclude):
        notification = _insert(
            admin.id,
            application,
            notification_type=notification_type,
            title=title,
            message=message,
            action_url=action_url,
            job_category_id=application.job_category_id,
        )
        if notification is not None:
            sent.append(notification)
    return sent


def list_for_user(user: User, unread_only: bool = False) -> list[Notification]:
    query = Notification.query.filter_by(user_id=user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_read(user: User, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise ResourceNotFound("Notification not found.")
    if notification.user_id != user.id:
        raise NotAuthorized("You can only read your own notifications.")
    notification.is_read = True
    return notification
