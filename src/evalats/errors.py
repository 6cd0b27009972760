from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    PRECONDITION_FAILED = "precondition_failed"
    VALIDATION_ERROR = "validation_error"


class DomainError(ValueError):
    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, *, kind: ErrorKind | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind.value, "detail": self.message}


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND


class InvalidTransitionError(DomainError):
    kind = ErrorKind.INVALID_TRANSITION


class PreconditionFailedError(DomainError):
    kind = ErrorKind.PRECONDITION_FAILED


class DomainValidationError(DomainError):
    kind = ErrorKind.VALIDATION_ERROR
