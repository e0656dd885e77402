"""Typed domain errors.

Services raise these; ``campusverse.main`` renders them into the standard
response envelope ``{"request_id", "data", "error": {"code", "message", "details"}}``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    status_code: int = 400
    code: str = "DOMAIN_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_error(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(DomainError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class NotAuthenticated(DomainError):
    status_code = 401
    code = "NOT_AUTHENTICATED"
    default_message = "Not authenticated"


class ForbiddenError(DomainError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access denied"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class StateConflictError(DomainError):
    """A request that is well formed but not allowed in the current lifecycle state."""

    status_code = 409
    code = "STATE_CONFLICT"


class AlreadyAttempted(StateConflictError):
    status_code = 409
    code = "ALREADY_ATTEMPTED"
    default_message = "You have already attempted this quiz"


class WindowClosed(StateConflictError):
    status_code = 403
    code = "WINDOW_CLOSED"
    default_message = "The quiz window has closed"


class NotStarted(StateConflictError):
    status_code = 403
    code = "NOT_STARTED"
    default_message = "The quiz has not started yet"


class QuizCancelled(StateConflictError):
    status_code = 403
    code = "QUIZ_CANCELLED"
    default_message = "The quiz has been cancelled"


class QuizLocked(StateConflictError):
    status_code = 409
    code = "QUIZ_LOCKED"
    default_message = "The quiz already has attempts; its window, questions and marks can no longer change"


class QuizHasAttempts(StateConflictError):
    status_code = 409
    code = "QUIZ_HAS_ATTEMPTS"
    default_message = "The quiz has attempts and cannot be deleted; cancel it instead"


class InsufficientCredits(DomainError):
    status_code = 402
    code = "INSUFFICIENT_CREDITS"
    default_message = "Insufficient AI credits"


class TransientStorageError(DomainError):
    status_code = 503
    code = "TRANSIENT_STORAGE_ERROR"
    default_message = "Storage is temporarily unavailable, please retry"


class InternalError(DomainError):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"
