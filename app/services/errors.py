from __future__ import annotations

from typing import Any


class BackOfficeError(Exception):
    """Base class for errors surfaced by the lifecycle engine and ledgers."""

    code = "error"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ValidationError(BackOfficeError):
    """Local precondition failure. Raised before any state is touched."""

    code = "validation_error"


class InsufficientFundsError(ValidationError):
    code = "insufficient_funds"


class ConflictError(BackOfficeError):
    """The stored version moved on since the entity was read."""

    code = "conflict"


class NotFoundError(BackOfficeError):
    code = "not_found"


class BackendError(BackOfficeError):
    """Any other persistence failure; carries the underlying message."""

    code = "backend_error"
