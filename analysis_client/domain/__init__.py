"""Domain layer definitions."""

from .analysis import JobSnapshot, JobStatus, SubmissionAttempt, SubmissionOutcome
from .errors import (
    ApiHttpError,
    IdentityError,
    InputValidationError,
    MissingJobIdError,
    QuotaExceededError,
    StorageError,
)

__all__ = [
    "ApiHttpError",
    "IdentityError",
    "InputValidationError",
    "JobSnapshot",
    "JobStatus",
    "MissingJobIdError",
    "QuotaExceededError",
    "StorageError",
    "SubmissionAttempt",
    "SubmissionOutcome",
]
