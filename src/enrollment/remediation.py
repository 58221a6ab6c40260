"""
Remediation queue.

A learner who fails a module repeatedly gets one pending remediation request
per (learner, module). An instructor approves or denies it; the side effects
of approval (module progress reset, enrollment reopened) run in the
remediation-updated event handler, so they happen exactly once per status
change no matter how the request was resolved.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.core.errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from src.core.identity import Caller, require_role
from src.db.models import RemediationRequestRow
from src.events.change import REMEDIATION_REQUESTS, ChangeEvent, Publisher, discard

from .state_machine import EnrollmentStateMachine, EnrollmentStatus


class RemediationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True)
class RemediationRequest:
    id: str
    user_id: str
    module_id: str
    course_id: str | None
    reason: str
    status: RemediationStatus
    attempt_count: int
    source_key: str
    requested_at: datetime | None = None
    resolved_by: str | None = None
    resolved_by_name: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None

    @classmethod
    def from_row(cls, row: RemediationRequestRow) -> RemediationRequest:
        return cls(
            id=row.id,
            user_id=row.user_id,
            module_id=row.module_id,
            course_id=row.course_id,
            reason=row.reason,
            status=RemediationStatus(row.status),
            attempt_count=row.attempt_count,
            source_key=row.source_key,
            requested_at=row.requested_at,
            resolved_by=row.resolved_by,
            resolved_by_name=row.resolved_by_name,
            resolved_at=row.resolved_at,
            resolution_notes=row.resolution_notes,
        )


class RemediationQueue:
    def __init__(
        self,
        session: Session,
        audit: AuditLog,
        enrollments: EnrollmentStateMachine,
        publish: Publisher = discard,
    ):
        self.session = session
        self.audit = audit
        self.enrollments = enrollments
        self.publish = publish

    def request_for_failure(
        self,
        user_id: str,
        module_id: str,
        course_id: str | None,
        attempt_count: int,
        source_key: str,
        actor_id: str,
        actor_name: str,
        reason: str | None = None,
    ) -> RemediationRequest:
        """
        Open a remediation request and fail the enrollment.

        Idempotent: a repeated ``source_key`` or an existing pending request
        for the same (learner, module) returns the existing request.
        """
        if not user_id or not module_id:
            raise InvalidArgumentError("user_id and module_id are required")

        existing = self.session.scalar(
            select(RemediationRequestRow).where(RemediationRequestRow.source_key == source_key)
        )
        if existing is None:
            existing = self._pending_row(user_id, module_id)
        if existing is not None:
            logger.debug(f"Remediation already requested for {user_id} on {module_id} ({existing.id})")
            return RemediationRequest.from_row(existing)

        row = RemediationRequestRow(
            id=uuid.uuid4().hex,
            user_id=user_id,
            module_id=module_id,
            course_id=course_id,
            reason=reason or f"Failed module {module_id} after {attempt_count} attempts",
            status=RemediationStatus.PENDING.value,
            attempt_count=attempt_count,
            source_key=source_key,
        )
        self.session.add(row)
        self.session.flush()
        self.publish(ChangeEvent(REMEDIATION_REQUESTS, row.id, None, row.to_snapshot()))

        logger.warning(f"Remediation requested for {user_id} on {module_id} (attempt {attempt_count})")
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.REMEDIATION_REQUEST,
            row.id,
            f"Remediation requested for user {user_id} on module {module_id}: {row.reason}",
            {"userId": user_id, "moduleId": module_id, "attemptCount": attempt_count},
        )

        if course_id:
            self._fail_enrollment(user_id, course_id, module_id, attempt_count, actor_id, actor_name)
        return RemediationRequest.from_row(row)

    def approve(self, caller: Caller | None, request_id: str, notes: str | None = None) -> RemediationRequest:
        return self._resolve(caller, request_id, RemediationStatus.APPROVED, notes)

    def deny(self, caller: Caller | None, request_id: str, notes: str | None = None) -> RemediationRequest:
        return self._resolve(caller, request_id, RemediationStatus.DENIED, notes)

    # ========================================
    # Reads
    # ========================================

    def get(self, request_id: str) -> RemediationRequest:
        return RemediationRequest.from_row(self._get_row(request_id))

    def find_pending(self, user_id: str, module_id: str) -> RemediationRequest | None:
        row = self._pending_row(user_id, module_id)
        return RemediationRequest.from_row(row) if row else None

    def list_pending(self, course_id: str | None = None) -> list[RemediationRequest]:
        stmt = select(RemediationRequestRow).where(RemediationRequestRow.status == RemediationStatus.PENDING.value)
        if course_id:
            stmt = stmt.where(RemediationRequestRow.course_id == course_id)
        stmt = stmt.order_by(RemediationRequestRow.requested_at)
        return [RemediationRequest.from_row(row) for row in self.session.scalars(stmt)]

    def list_for_user(self, user_id: str) -> list[RemediationRequest]:
        stmt = (
            select(RemediationRequestRow)
            .where(RemediationRequestRow.user_id == user_id)
            .order_by(RemediationRequestRow.requested_at)
        )
        return [RemediationRequest.from_row(row) for row in self.session.scalars(stmt)]

    # ========================================
    # Helpers
    # ========================================

    def _resolve(
        self,
        caller: Caller | None,
        request_id: str,
        status: RemediationStatus,
        notes: str | None,
    ) -> RemediationRequest:
        caller = require_role(caller)
        row = self._get_row(request_id)
        if row.status != RemediationStatus.PENDING.value:
            raise FailedPreconditionError(
                f"Remediation request {request_id} is already {row.status}",
                request_id=request_id,
            )

        before = row.to_snapshot()
        row.status = status.value
        row.resolved_by = caller.uid
        row.resolved_by_name = caller.name
        row.resolved_at = datetime.now(UTC)
        row.resolution_notes = notes
        self.session.flush()
        self.publish(ChangeEvent(REMEDIATION_REQUESTS, row.id, before, row.to_snapshot()))

        logger.info(f"Remediation {request_id} {status.value} by {caller.name}")
        return RemediationRequest.from_row(row)

    def _fail_enrollment(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        attempt_count: int,
        actor_id: str,
        actor_name: str,
    ) -> None:
        enrollment = self.enrollments.get(user_id, course_id)
        if enrollment is None:
            logger.warning(f"No enrollment for {user_id} in {course_id}; remediation request left unlinked")
            return
        if enrollment.status in (EnrollmentStatus.NOT_STARTED, EnrollmentStatus.IN_PROGRESS):
            self.enrollments.mark_failed(
                user_id,
                course_id,
                actor_id,
                actor_name,
                reason=f"Failed module {module_id} {attempt_count} times; remediation requested",
            )
        elif enrollment.status is not EnrollmentStatus.FAILED:
            logger.warning(f"Enrollment {enrollment.id} is {enrollment.status.value}; not marking it failed")

    def _pending_row(self, user_id: str, module_id: str) -> RemediationRequestRow | None:
        stmt = select(RemediationRequestRow).where(
            RemediationRequestRow.user_id == user_id,
            RemediationRequestRow.module_id == module_id,
            RemediationRequestRow.status == RemediationStatus.PENDING.value,
        )
        return self.session.scalar(stmt.limit(1))

    def _get_row(self, request_id: str) -> RemediationRequestRow:
        row = self.session.get(RemediationRequestRow, request_id)
        if row is None:
            raise NotFoundError(f"Remediation request {request_id} not found", request_id=request_id)
        return row
