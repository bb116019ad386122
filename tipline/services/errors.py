"""Exception hierarchy for the reporting services.

Exception messages are split in two: the full message is for logs, the
``safe_message`` is what a client is allowed to see.
"""
from typing import Optional

# Shared by every case-password rejection so callers cannot tell which check failed
GENERIC_ACCESS_MESSAGE = "Invalid case password. Report not found."


class TiplineError(Exception):
    """Base exception for the service layer."""

    status_code = 500

    def __init__(self, message: str, *, safe_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self._safe_message = safe_message or message

    @property
    def safe_message(self) -> str:
        return self._safe_message


class ValidationError(TiplineError):
    """Missing or contradictory input, e.g. an anonymous report carrying a name."""

    status_code = 400


class AccessRejected(TiplineError):
    """A case password did not open a report.

    Subclasses exist for logging only. Both render the same status and message.
    """

    status_code = 401

    def __init__(self, message: str):
        super().__init__(message, safe_message=GENERIC_ACCESS_MESSAGE)


class NotFoundError(AccessRejected):
    """No report carries the digest of the candidate password."""


class AuthenticationError(AccessRejected):
    """A report carries the digest but the bcrypt comparison failed."""


class PermissionDeniedError(TiplineError):
    status_code = 403


class ResourceNotFoundError(TiplineError):
    """A staff lookup by id found nothing."""

    status_code = 404


class ConflictError(TiplineError):
    """
    Raised when:
    - no unique case password could be minted within the retry budget
    - a status update was made against a stale version of the report
    - a second admin account is created
    """

    status_code = 409


class UpstreamError(TiplineError):
    """Evidence storage or the database failed. Not retried here."""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, safe_message="A storage service failed. Please try again later.")
