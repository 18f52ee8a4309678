"""
Error types for cfmta.

Every error carries a short title and a detail string embedding the
underlying cause, so callers can surface them the same way a Terraform
diagnostic is surfaced.
"""

from typing import List, Optional


class MtaError(Exception):
    """Base class for all cfmta errors."""

    def __init__(self, title: str, detail: str = ""):
        super().__init__(title, detail)
        self.title = title
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.title}: {self.detail}"
        return self.title


class ApiError(MtaError):
    """A deploy-service or Cloud Controller call returned an error."""

    def __init__(self, title: str, detail: str = "", status_code: Optional[int] = None):
        super().__init__(title, detail)
        self.status_code = status_code


class NotFoundError(ApiError):
    """The requested remote object does not exist (HTTP 404)."""
    pass


class ValidationError(MtaError):
    """Local configuration or identifier is malformed. No network call was made."""
    pass


class UploadError(MtaError):
    """Uploading an archive or extension descriptor failed."""
    pass


class MtaIdMissingError(MtaError):
    """The archive's deployment descriptor does not yield an MTA id."""
    pass


class IdentityConflictError(MtaError):
    """The uploaded archive belongs to a different MTA than the existing resource."""
    pass


class OngoingOperationError(MtaError):
    """Listing or aborting an in-flight operation failed."""
    pass


class JobFailedError(MtaError):
    """
    A remote job reached a terminal state other than the one awaited.

    Attributes:
        status: Terminal JobStatus the job ended in
        messages: Job log lines known at the time of failure
    """

    def __init__(self, title: str, detail: str, status, messages: Optional[List[str]] = None):
        super().__init__(title, detail)
        self.status = status
        self.messages = list(messages or [])

    @property
    def last_message(self) -> str:
        return self.messages[-1] if self.messages else ""


class PollCancelledError(MtaError):
    """Polling stopped because the caller cancelled or its deadline passed."""
    pass


class DeploymentError(MtaError):
    """A deployment step other than upload, guard or polling failed."""
    pass
