"""
Enrollment Module - Enrollment lifecycle, manual review and remediation.
"""

from src.enrollment.remediation import RemediationQueue, RemediationRequest, RemediationStatus
from src.enrollment.state_machine import (
    TRANSITIONS,
    Enrollment,
    EnrollmentStateMachine,
    EnrollmentStatus,
    enrollment_id,
)

__all__ = [
    "TRANSITIONS",
    "Enrollment",
    "EnrollmentStateMachine",
    "EnrollmentStatus",
    "RemediationQueue",
    "RemediationRequest",
    "RemediationStatus",
    "enrollment_id",
]
