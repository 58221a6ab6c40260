"""
Core Module - Shared primitives for the assessment engine.

Components:
- errors: Error taxonomy mirroring the platform error codes
- identity: Authenticated caller and role checks
- scoring: Half-up rounding and competency bands
- log_setup: loguru sink configuration
"""

from src.core.errors import (
    AlreadyExistsError,
    AssessmentError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    OutOfRangeError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from src.core.identity import Caller, Role, require_authenticated, require_role
from src.core.scoring import CompetencyLevel, calculate_competency, percent, round_half_up

__all__ = [
    # Errors
    "AssessmentError",
    "InvalidArgumentError",
    "OutOfRangeError",
    "FailedPreconditionError",
    "NotFoundError",
    "AlreadyExistsError",
    "UnauthenticatedError",
    "PermissionDeniedError",
    # Identity
    "Caller",
    "Role",
    "require_authenticated",
    "require_role",
    # Scoring
    "CompetencyLevel",
    "calculate_competency",
    "percent",
    "round_half_up",
]
