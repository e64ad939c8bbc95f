"""Workflow error taxonomy.

Every error is a Werkzeug HTTP exception so the JSON error handlers in the
application factory render it without extra plumbing.
"""

from __future__ import annotations

from werkzeug.exceptions import (
    BadGateway,
    Conflict,
    Forbidden,
    NotFound,
    Unauthorized,
    UnprocessableEntity,
)


class NotAuthenticated(Unauthorized):
    description = "Not authenticated."


class NotAuthorized(Forbidden):
    description = "You are not allowed to perform this action."


class NotOwner(NotAuthorized):
    description = "You can only act on your own applications."


class ResourceNotFound(NotFound):
    pass


class ApplicationNotFound(ResourceNotFound):
    description = "Application not found."


class InvalidState(Conflict):
    pass


class AlreadySubmitted(InvalidState):
    description = "Application has already been submitted."


class AttemptLimitReached(InvalidState):
    """Raised once a document type has used every resubmission attempt."""


class ValidationFailed(UnprocessableEntity):
    pass


class MissingRequiredDocument(ValidationFailed):
    def __init__(self, document_name: str):
        self.document_name = document_name
        super().__init__(
            f"Missing required document: {document_name}. "
            "Please upload all required documents."
        )


class GatewayError(BadGateway):
    """The payment gateway could not be reached or refused the request."""
