"""Error types shared across layers."""
from __future__ import annotations

from typing import Any


class ApiHttpError(RuntimeError):
    """Raised when the remote analysis service rejects a request.

    ``status`` is ``0`` for network level failures and timeouts.
    """

    def __init__(self, message: str, status: int, data: Any | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.data = data


class MissingJobIdError(ValueError):
    """Raised when a creation response carries no job identifier."""


class StorageError(RuntimeError):
    """Raised when a storage area cannot complete a write."""


class QuotaExceededError(StorageError):
    """Raised when a write would exceed the storage quota."""


class IdentityError(RuntimeError):
    """Raised when the identity provider cannot look up or start a session."""


class InputValidationError(ValueError):
    """Raised when user input cannot be submitted."""
