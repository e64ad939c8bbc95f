"""Resolve the bearer token subject to a local user."""

from __future__ import annotations

from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from models.user import User
from services.errors import NotAuthenticated


def current_user() -> User:
    """Return the user behind the request's JWT or raise ``NotAuthenticated``.

    The token ``sub`` is the identity provider's subject id, matched against
    ``User.external_id``.
    """

    verify_jwt_in_request(optional=True)
    subject = get_jwt_identity()
    if not subject:
        raise NotAuthenticated("Authentication required.")
    user = User.query.filter_by(external_id=str(subject)).first()
    if user is None:
        raise NotAuthenticated("No local account matches this identity.")
    return user
