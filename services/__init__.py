"""Workflow services: document review, payment reconciliation, notifications."""

from .errors import (
    AlreadySubmitted,
    ApplicationNotFound,
    AttemptLimitReached,
    GatewayError,
    InvalidState,
    MissingRequiredDocument,
    NotAuthenticated,
    NotAuthorized,
    NotOwner,
    ResourceNotFound,
    ValidationFailed,
)
from .settings import WorkflowSettings, get_settings

__all__ = [
    "AlreadySubmitted",
    "ApplicationNotFound",
    "AttemptLimitReached",
    "GatewayError",
    "InvalidState",
    "MissingRequiredDocument",
    "NotAuthenticated",
    "NotAuthorized",
    "NotOwner",
    "ResourceNotFound",
    "ValidationFailed",
    "WorkflowSettings",
    "get_settings",
]
