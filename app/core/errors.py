"""
Audit Errors
============
Exception taxonomy for the audit pipeline.

    InputValidationError   — hotel name / city too short, raised before any network call
    AuditServiceError      — transport failure, timeout or HTTP error from the audit engine
    EmptyResponseError     — engine answered but returned no text
    CorruptedPayloadError  — returned text is not a JSON object
    AuditInProgressError   — a second audit was submitted while one is pending

Field-level malformations inside a parsable payload are never errors;
the report validator repairs them.
"""
from typing import Dict


class AuditError(Exception):
    """Base class for every audit pipeline failure."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputValidationError(AuditError):
    """One or more input fields failed local validation."""

    def __init__(self, field_errors: Dict[str, bool], message: str = "") -> None:
        super().__init__(
            message
            or "Incomplete data: Please ensure both Hotel Name and City are provided."
        )
        self.field_errors = field_errors


class AuditServiceError(AuditError):
    """The audit engine could not be reached or rejected the request."""

    retryable = True


class EmptyResponseError(AuditServiceError):
    """The audit engine returned a success status without a text body."""

    def __init__(self, message: str = "Audit engine returned an empty response.") -> None:
        super().__init__(message)


class CorruptedPayloadError(AuditError):
    """The audit engine returned text that cannot be read as a JSON object."""

    retryable = True

    def __init__(self, message: str = "Audit data was corrupted. Please try again.") -> None:
        super().__init__(message)


class AuditInProgressError(AuditError):
    """An audit is already running for this session."""

    def __init__(self, message: str = "An audit is already in progress.") -> None:
        super().__init__(message)
