"""
Enrollment state machine.

    not_started  -> in_progress
    in_progress  -> completed | failed | needs_review
    needs_review -> completed | in_progress
    failed       -> in_progress          (remediation approval only)
    completed    -> in_progress          (remediation approval only)

Only this module writes ``EnrollmentRow.status``. Every transition is audited
with actor, before/after status and a reason, and no state is ever skipped: a
learner who reaches 100% from not_started passes through in_progress as two
separate transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.core.errors import (
    AlreadyExistsError,
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    OutOfRangeError,
)
from src.core.identity import Caller, require_role
from src.db.models import EnrollmentRow
from src.events.change import ENROLLMENTS, ChangeEvent, Publisher, discard

if TYPE_CHECKING:
    from src.catalog import CourseCatalog
    from src.ledger import GradeLedger, GradeRecord
    from src.progress import ProgressTracker


class EnrollmentStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"


TRANSITIONS: dict[EnrollmentStatus, frozenset[EnrollmentStatus]] = {
    EnrollmentStatus.NOT_STARTED: frozenset({EnrollmentStatus.IN_PROGRESS}),
    EnrollmentStatus.IN_PROGRESS: frozenset(
        {EnrollmentStatus.COMPLETED, EnrollmentStatus.FAILED, EnrollmentStatus.NEEDS_REVIEW}
    ),
    EnrollmentStatus.NEEDS_REVIEW: frozenset({EnrollmentStatus.COMPLETED, EnrollmentStatus.IN_PROGRESS}),
    EnrollmentStatus.FAILED: frozenset({EnrollmentStatus.IN_PROGRESS}),
    EnrollmentStatus.COMPLETED: frozenset({EnrollmentStatus.IN_PROGRESS}),
}

# Reopening a finished attempt cycle requires an approved remediation request.
REMEDIATION_ONLY = frozenset(
    {
        (EnrollmentStatus.FAILED, EnrollmentStatus.IN_PROGRESS),
        (EnrollmentStatus.COMPLETED, EnrollmentStatus.IN_PROGRESS),
    }
)


def enrollment_id(user_id: str, course_id: str) -> str:
    return f"{user_id}_{course_id}"


@dataclass(frozen=True)
class Enrollment:
    id: str
    user_id: str
    course_id: str
    progress: int
    status: EnrollmentStatus
    quiz_answers: dict[str, Any] | None = None
    score: float | None = None
    enrolled_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: EnrollmentRow) -> Enrollment:
        return cls(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            progress=row.progress,
            status=EnrollmentStatus(row.status),
            quiz_answers=row.quiz_answers,
            score=row.score,
            enrolled_at=row.enrolled_at,
            completed_at=row.completed_at,
        )


class EnrollmentStateMachine:
    """Sole writer of enrollment status."""

    def __init__(
        self,
        session: Session,
        audit: AuditLog,
        publish: Publisher = discard,
        progress: ProgressTracker | None = None,
        catalog: CourseCatalog | None = None,
        ledger: GradeLedger | None = None,
    ):
        self.session = session
        self.audit = audit
        self.publish = publish
        self.progress = progress
        self.catalog = catalog
        self.ledger = ledger

    # ========================================
    # Lifecycle
    # ========================================

    def enroll(self, user_id: str, course_id: str, actor_id: str, actor_name: str) -> Enrollment:
        if not user_id or not course_id:
            raise InvalidArgumentError("user_id and course_id are required")
        key = enrollment_id(user_id, course_id)
        if self.session.get(EnrollmentRow, key) is not None:
            raise AlreadyExistsError(f"User {user_id} is already enrolled in {course_id}", enrollment_id=key)

        row = EnrollmentRow(
            id=key,
            user_id=user_id,
            course_id=course_id,
            progress=0,
            status=EnrollmentStatus.NOT_STARTED.value,
        )
        self.session.add(row)
        self.session.flush()
        self.publish(ChangeEvent(ENROLLMENTS, key, None, row.to_snapshot()))
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.ENROLLMENT_CREATE,
            key,
            f"Enrolled user {user_id} in course {course_id}",
        )
        return Enrollment.from_row(row)

    def begin(
        self,
        user_id: str,
        course_id: str,
        actor_id: str,
        actor_name: str,
        reason: str = "Learner started the course",
    ) -> Enrollment:
        row = self._get_row(user_id, course_id)
        self._transition(row, EnrollmentStatus.IN_PROGRESS, actor_id, actor_name, reason)
        return Enrollment.from_row(row)

    def update_progress(
        self,
        user_id: str,
        course_id: str,
        progress: int,
        actor_id: str,
        actor_name: str,
        needs_review: bool = False,
        quiz_answers: dict[str, Any] | None = None,
        resubmitted: bool = False,
    ) -> Enrollment:
        """
        Record course progress and apply the transitions it implies.

        Reaching 100% from in_progress completes the enrollment, or moves it to
        needs_review when the submission has manually-reviewable answers. Once
        at 100%, only a resubmission (``resubmitted``) re-evaluates completion,
        so a rejected review waits for the learner to submit again.
        """
        if progress is None or not 0 <= progress <= 100:
            raise OutOfRangeError(f"progress must be between 0 and 100, got {progress}", field="progress")

        row = self._get_row(user_id, course_id)
        previous = row.progress or 0
        status = EnrollmentStatus(row.status)

        if status is EnrollmentStatus.NOT_STARTED and progress > 0:
            self._transition(
                row,
                EnrollmentStatus.IN_PROGRESS,
                actor_id,
                actor_name,
                f"Progress recorded ({progress}%)",
                progress=progress,
            )
            status = EnrollmentStatus.IN_PROGRESS

        if status is EnrollmentStatus.IN_PROGRESS and progress >= 100 and (previous < 100 or resubmitted):
            if needs_review:
                self._transition(
                    row,
                    EnrollmentStatus.NEEDS_REVIEW,
                    actor_id,
                    actor_name,
                    "Submission contains answers that require instructor review",
                    progress=progress,
                    quiz_answers=quiz_answers,
                )
            else:
                self._transition(
                    row, EnrollmentStatus.COMPLETED, actor_id, actor_name, "All modules complete", progress=progress
                )
            return Enrollment.from_row(row)

        if row.progress != progress:
            before = row.to_snapshot()
            row.progress = progress
            self.session.flush()
            self.publish(ChangeEvent(ENROLLMENTS, row.id, before, row.to_snapshot()))
            self.audit.record(
                actor_id,
                actor_name,
                AuditAction.ENROLLMENT_UPDATE,
                row.id,
                f"Updated progress to {progress}% (status: {row.status})",
            )
        return Enrollment.from_row(row)

    def mark_failed(
        self,
        user_id: str,
        course_id: str,
        actor_id: str,
        actor_name: str,
        reason: str = "Assessment failed",
    ) -> Enrollment:
        """Move to failed, passing through in_progress if the learner had not started."""
        row = self._get_row(user_id, course_id)
        if row.status == EnrollmentStatus.FAILED.value:
            return Enrollment.from_row(row)
        if row.status == EnrollmentStatus.NOT_STARTED.value:
            self._transition(row, EnrollmentStatus.IN_PROGRESS, actor_id, actor_name, "Assessment attempted")
        self._transition(row, EnrollmentStatus.FAILED, actor_id, actor_name, reason)
        return Enrollment.from_row(row)

    def reopen_for_remediation(
        self,
        user_id: str,
        course_id: str,
        actor_id: str,
        actor_name: str,
        reason: str = "Remediation approved",
    ) -> Enrollment:
        """Return a failed or completed enrollment to in_progress for a retake."""
        row = self._get_row(user_id, course_id)
        if row.status == EnrollmentStatus.IN_PROGRESS.value:
            return Enrollment.from_row(row)
        self._transition(
            row,
            EnrollmentStatus.IN_PROGRESS,
            actor_id,
            actor_name,
            reason,
            via_remediation=True,
            completed_at=None,
        )
        return Enrollment.from_row(row)

    def sync_progress(
        self,
        user_id: str,
        course_id: str,
        actor_id: str,
        actor_name: str,
        resubmitted: bool = False,
    ) -> Enrollment | None:
        """Recompute course progress from module progress records and apply it."""
        if self.progress is None or self.catalog is None:
            raise FailedPreconditionError("Progress sync needs a progress tracker and a catalog")

        if self.session.get(EnrollmentRow, enrollment_id(user_id, course_id)) is None:
            logger.debug(f"No enrollment for {user_id} in {course_id}; skipping progress sync")
            return None
        modules = self.catalog.get_course_modules(course_id)
        if not modules:
            return None

        module_ids = {m.id for m in modules}
        records = [r for r in self.progress.get_course_progress(user_id, course_id) if r.module_id in module_ids]
        completion = self.progress.calculate_course_completion(records, len(modules))
        awaiting = [r for r in records if r.awaiting_review]
        quiz_answers = {
            r.module_id: {
                block_id: block["answers"]
                for block_id, block in r.completed_blocks.items()
                if "answers" in block
            }
            for r in awaiting
        }
        return self.update_progress(
            user_id,
            course_id,
            completion,
            actor_id,
            actor_name,
            needs_review=bool(awaiting),
            quiz_answers=quiz_answers or None,
            resubmitted=resubmitted,
        )

    # ========================================
    # Manual review
    # ========================================

    def approve_review(
        self,
        caller: Caller | None,
        user_id: str,
        course_id: str,
        module_id: str,
        score: float | None = None,
        notes: str | None = None,
    ) -> GradeRecord:
        """
        Accept a submission awaiting review.

        The final grade goes through the ledger first (the submitted score
        unless ``score`` overrides it). The enrollment completes with that
        score once no module of the course is still awaiting review.
        """
        caller = require_role(caller)
        if self.ledger is None or self.progress is None or self.catalog is None:
            raise FailedPreconditionError("Review approval needs a ledger, progress tracker and catalog")

        row = self._get_row(user_id, course_id)
        if row.status != EnrollmentStatus.NEEDS_REVIEW.value:
            raise FailedPreconditionError(
                f"Enrollment {row.id} is {row.status}, not awaiting review",
                enrollment_id=row.id,
            )
        module = self.catalog.get_module(module_id)
        if module.course_id != course_id:
            raise InvalidArgumentError(f"Module {module_id} is not part of course {course_id}")
        record = self.progress.get(user_id, module_id)
        if record is None or not record.awaiting_review:
            raise FailedPreconditionError(
                f"Module {module_id} has no submission awaiting review for {user_id}",
                module_id=module_id,
            )

        final_score = score if score is not None else record.last_score
        if final_score is None:
            raise InvalidArgumentError("A score is required to approve this submission")

        grade = self.ledger.enter_grade(
            user_id,
            module_id,
            final_score,
            module.passing_score,
            caller.uid,
            caller.name,
            notes=notes
            or (
                f"Instructor review approved. Score overridden to {score:g}%."
                if score is not None
                else "Instructor review approved. Original score accepted."
            ),
            course_id=course_id,
        )
        self.progress.resolve_review(user_id, module_id, caller.uid, caller.name)

        still_awaiting = [r.module_id for r in self.progress.get_course_progress(user_id, course_id) if r.awaiting_review]
        if still_awaiting:
            logger.info(f"Enrollment {row.id} still awaiting review on {', '.join(still_awaiting)}")
        else:
            self._transition(
                row,
                EnrollmentStatus.COMPLETED,
                caller.uid,
                caller.name,
                f"Review approved by {caller.name} (final score {final_score:g}%)",
                score=final_score,
                quiz_answers=None,
            )
        return grade

    def reject_review(self, caller: Caller | None, user_id: str, course_id: str, reason: str) -> Enrollment:
        """Send a submission back for resubmission. No grade is written."""
        caller = require_role(caller)
        if not reason or not reason.strip():
            raise InvalidArgumentError("A rejection reason is required")

        row = self._get_row(user_id, course_id)
        if row.status != EnrollmentStatus.NEEDS_REVIEW.value:
            raise FailedPreconditionError(
                f"Enrollment {row.id} is {row.status}, not awaiting review",
                enrollment_id=row.id,
            )
        self._transition(
            row,
            EnrollmentStatus.IN_PROGRESS,
            caller.uid,
            caller.name,
            f"Review rejected: {reason.strip()}. Learner may resubmit.",
        )
        return Enrollment.from_row(row)

    # ========================================
    # Reads
    # ========================================

    def get(self, user_id: str, course_id: str) -> Enrollment | None:
        row = self.session.get(EnrollmentRow, enrollment_id(user_id, course_id))
        return Enrollment.from_row(row) if row else None

    def list_by_status(self, status: EnrollmentStatus | str, course_id: str | None = None) -> list[Enrollment]:
        value = EnrollmentStatus(status).value
        stmt = select(EnrollmentRow).where(EnrollmentRow.status == value)
        if course_id:
            stmt = stmt.where(EnrollmentRow.course_id == course_id)
        stmt = stmt.order_by(EnrollmentRow.updated_at)
        return [Enrollment.from_row(row) for row in self.session.scalars(stmt)]

    def list_for_user(self, user_id: str) -> list[Enrollment]:
        stmt = select(EnrollmentRow).where(EnrollmentRow.user_id == user_id).order_by(EnrollmentRow.enrolled_at)
        return [Enrollment.from_row(row) for row in self.session.scalars(stmt)]

    # ========================================
    # Helpers
    # ========================================

    def _get_row(self, user_id: str, course_id: str) -> EnrollmentRow:
        if not user_id or not course_id:
            raise InvalidArgumentError("user_id and course_id are required")
        row = self.session.get(EnrollmentRow, enrollment_id(user_id, course_id))
        if row is None:
            raise NotFoundError(
                f"User {user_id} is not enrolled in {course_id}",
                enrollment_id=enrollment_id(user_id, course_id),
            )
        return row

    def _transition(
        self,
        row: EnrollmentRow,
        target: EnrollmentStatus,
        actor_id: str,
        actor_name: str,
        reason: str,
        via_remediation: bool = False,
        **changes: Any,
    ) -> None:
        current = EnrollmentStatus(row.status)
        if target not in TRANSITIONS[current]:
            raise FailedPreconditionError(
                f"Illegal enrollment transition {current.value} -> {target.value}",
                enrollment_id=row.id,
            )
        if (current, target) in REMEDIATION_ONLY and not via_remediation:
            raise FailedPreconditionError(
                f"{current.value} -> {target.value} requires an approved remediation request",
                enrollment_id=row.id,
            )

        before = row.to_snapshot()
        row.status = target.value
        for key, value in changes.items():
            setattr(row, key, value)
        if target is EnrollmentStatus.COMPLETED:
            row.completed_at = datetime.now(UTC)
        self.session.flush()
        self.publish(ChangeEvent(ENROLLMENTS, row.id, before, row.to_snapshot()))

        logger.info(f"Enrollment {row.id}: {current.value} -> {target.value} ({reason})")
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.ENROLLMENT_TRANSITION,
            row.id,
            f"{current.value} → {target.value}: {reason}",
            {"from": current.value, "to": target.value, "reason": reason},
        )
