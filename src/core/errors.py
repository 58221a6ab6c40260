"""
Error taxonomy for the assessment engine.

Each error carries a stable ``code`` matching the document-store platform
error codes, so callers and event handlers can branch on the category
without parsing messages.
"""

from __future__ import annotations

from typing import Any


class AssessmentError(Exception):
    """Base class for all expected engine failures."""

    code: str = "internal"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class InvalidArgumentError(AssessmentError):
    """Input failed validation (missing ids, bad ranges, malformed payloads)."""

    code = "invalid-argument"


class OutOfRangeError(InvalidArgumentError):
    """A numeric value (score, progress) fell outside 0-100."""

    code = "out-of-range"


class FailedPreconditionError(AssessmentError):
    """Operation not allowed in the current state (immutable fields, illegal transitions)."""

    code = "failed-precondition"


class NotFoundError(AssessmentError):
    """Referenced module, grade, enrollment or request does not exist."""

    code = "not-found"


class AlreadyExistsError(AssessmentError):
    """Record with the same deterministic id already exists."""

    code = "already-exists"


class UnauthenticatedError(AssessmentError):
    """Callable operation invoked without an authenticated caller."""

    code = "unauthenticated"


class PermissionDeniedError(AssessmentError):
    """Caller is authenticated but lacks the required role."""

    code = "permission-denied"
