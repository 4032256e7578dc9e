"""Error taxonomy for recurrence validation, credentials and calendar sync.

| Error                      | Raised when                                        |
|----------------------------|----------------------------------------------------|
| RecurrenceValidationError  | recurrence parameters are illegal (opt-in raise)   |
| AuthError                  | token invalid or revoked; user must re-link        |
| PermissionDeniedError      | the granted Google scopes are insufficient         |
| NotFoundError              | unknown local user, or missing remote resource     |
| MissingCredentialError     | the user never linked Google Calendar              |
| SyncError                  | any other remote or transport failure (retryable)  |
| InvalidSyncTransition      | a meeting mirror was moved out of order            |
"""

from __future__ import annotations


class StudyMeetingsError(Exception):
    """Base exception for all study-meetings errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RecurrenceValidationError(StudyMeetingsError):
    """Recurrence parameters failed validation."""

    def __init__(self, errors: list[str]):
        super().__init__("Invalid recurrence parameters: " + "; ".join(errors))
        self.errors = list(errors)


class AuthError(StudyMeetingsError):
    """Access or refresh token rejected by the provider."""


class PermissionDeniedError(StudyMeetingsError):
    """Provider refused the call for lack of permission."""


class NotFoundError(StudyMeetingsError):
    """Local user or remote resource does not exist."""


class MissingCredentialError(StudyMeetingsError):
    """User has no refresh token on file."""


class SyncError(StudyMeetingsError):
    """Generic remote or transport failure."""


class InvalidSyncTransition(StudyMeetingsError):
    """Meeting mirror state change not allowed."""
