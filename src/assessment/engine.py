"""
Assessment engine command facade.

Each command runs in its own unit of work and then drains the event queue,
so trigger side effects (system grades, remediation, enrollment transitions,
course grade snapshots) are applied before the command returns.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.orm import Session

from config import Settings, get_settings
from src.audit import AuditEntry, query_audit_log
from src.catalog import ModuleDefinition
from src.core.errors import InvalidArgumentError
from src.core.identity import Caller, Role, require_authenticated, require_role
from src.course_grade import CourseGradeCalculation
from src.enrollment import Enrollment, EnrollmentStatus, RemediationRequest
from src.events.bus import EventBus
from src.events.handlers import register_handlers
from src.grading import QuizQuestion, QuizResult, grade_quiz
from src.ledger import GradeRecord
from src.progress import ModuleProgress

from .context import AssessmentContext

T = TypeVar("T")

ENROLLMENT_ROLES = frozenset({Role.ADMIN, Role.INSTRUCTOR})


class AssessmentEngine:
    """Entry point for commands and reads against the assessment store."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        settings: Settings | None = None,
    ):
        if session_factory is None:
            from src.db.database import SessionLocal

            session_factory = SessionLocal
        self.settings = settings or get_settings()
        self.bus = register_handlers(EventBus(session_factory, self.settings))

    # ========================================
    # Plumbing
    # ========================================

    def _command(self, fn: Callable[[AssessmentContext], T]) -> T:
        with self.bus.unit_of_work() as ctx:
            result = fn(ctx)
        self.bus.run_pending()
        return result

    def _read(self, fn: Callable[[AssessmentContext], T]) -> T:
        with self.bus.unit_of_work() as ctx:
            return fn(ctx)

    @property
    def failed_deliveries(self):
        return list(self.bus.failed)

    # ========================================
    # Catalog & enrollment
    # ========================================

    def add_module(self, module: ModuleDefinition) -> ModuleDefinition:
        return self._command(
            lambda ctx: ctx.catalog.add_module(module, *ctx.system_actor)
        )

    def enroll(self, caller: Caller | None, course_id: str, user_id: str | None = None) -> Enrollment:
        """Enroll the caller, or another user when the caller is staff with enrollment rights."""
        caller = require_authenticated(caller)
        if user_id and user_id != caller.uid:
            require_role(caller, ENROLLMENT_ROLES)
        target = user_id or caller.uid
        return self._command(lambda ctx: ctx.enrollments.enroll(target, course_id, caller.uid, caller.name))

    # ========================================
    # Learner activity
    # ========================================

    def submit_quiz(
        self,
        caller: Caller | None,
        course_id: str,
        module_id: str,
        block_id: str,
        questions: Sequence[QuizQuestion | dict],
        answers: Sequence[Any],
        total_required_blocks: int,
        passing_score: float | None = None,
    ) -> QuizResult:
        """Grade a quiz attempt for the caller and record it on their module progress."""
        caller = require_authenticated(caller)

        def run(ctx: AssessmentContext) -> QuizResult:
            module = ctx.catalog.get_module(module_id)
            if module.course_id != course_id:
                raise InvalidArgumentError(f"Module {module_id} is not part of course {course_id}")
            threshold = module.passing_score if passing_score is None else passing_score
            result = grade_quiz(questions, answers, threshold)
            ctx.progress.record_quiz_attempt(
                caller.uid,
                course_id,
                module_id,
                block_id,
                result.score,
                result.passed,
                total_required_blocks,
                caller.uid,
                caller.name,
                needs_review=result.needs_review,
                answers=list(answers),
            )
            return result

        result = self._command(run)
        logger.info(
            f"Quiz {block_id} submitted by {caller.uid}: {result.score}% "
            f"(passed={result.passed}, needs_review={result.needs_review})"
        )
        return result

    def complete_block(
        self,
        caller: Caller | None,
        course_id: str,
        module_id: str,
        block_id: str,
        total_required_blocks: int,
    ) -> ModuleProgress:
        caller = require_authenticated(caller)
        return self._command(
            lambda ctx: ctx.progress.mark_block_complete(
                caller.uid, course_id, module_id, block_id, total_required_blocks, caller.uid, caller.name
            )
        )

    def remove_progress(self, caller: Caller | None, user_id: str, module_id: str) -> None:
        """Delete a learner's module progress (admin only)."""
        caller = require_role(caller, frozenset({Role.ADMIN}))
        self._command(lambda ctx: ctx.progress.remove(user_id, module_id, caller.uid, caller.name))

    # ========================================
    # Grading
    # ========================================

    def enter_grade(
        self,
        caller: Caller | None,
        user_id: str,
        module_id: str,
        score: float,
        notes: str | None = None,
        passing_score: float | None = None,
    ) -> GradeRecord:
        caller = require_role(caller)

        def run(ctx: AssessmentContext) -> GradeRecord:
            module = ctx.catalog.get_module(module_id)
            return ctx.ledger.enter_grade(
                user_id,
                module_id,
                score,
                module.passing_score if passing_score is None else passing_score,
                caller.uid,
                caller.name,
                notes=notes,
                course_id=module.course_id,
            )

        return self._command(run)

    def correct_grade(
        self,
        caller: Caller | None,
        grade_id: str,
        new_score: float,
        reason: str,
        notes: str | None = None,
        passing_score: float | None = None,
    ) -> GradeRecord:
        caller = require_role(caller)

        def run(ctx: AssessmentContext) -> GradeRecord:
            threshold = passing_score
            if threshold is None:
                threshold = ctx.ledger.get_grade(grade_id).passing_score
            return ctx.ledger.correct_grade(grade_id, new_score, threshold, reason, caller.uid, caller.name, notes)

        return self._command(run)

    def set_grade_visibility(self, caller: Caller | None, grade_id: str, visible: bool) -> GradeRecord:
        caller = require_role(caller)
        return self._command(lambda ctx: ctx.ledger.set_visibility(grade_id, visible, caller.uid, caller.name))

    def calculate_course_grade(self, caller: Caller | None, user_id: str, course_id: str) -> CourseGradeCalculation:
        return self._command(lambda ctx: ctx.course_grades.calculate_course_grade(caller, user_id, course_id))

    # ========================================
    # Review & remediation
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
        return self._command(
            lambda ctx: ctx.enrollments.approve_review(caller, user_id, course_id, module_id, score, notes)
        )

    def reject_review(self, caller: Caller | None, user_id: str, course_id: str, reason: str) -> Enrollment:
        return self._command(lambda ctx: ctx.enrollments.reject_review(caller, user_id, course_id, reason))

    def approve_remediation(self, caller: Caller | None, request_id: str, notes: str | None = None) -> RemediationRequest:
        return self._command(lambda ctx: ctx.remediation.approve(caller, request_id, notes))

    def deny_remediation(self, caller: Caller | None, request_id: str, notes: str | None = None) -> RemediationRequest:
        return self._command(lambda ctx: ctx.remediation.deny(caller, request_id, notes))

    # ========================================
    # Reads
    # ========================================

    def get_enrollment(self, user_id: str, course_id: str) -> Enrollment | None:
        return self._read(lambda ctx: ctx.enrollments.get(user_id, course_id))

    def get_progress(self, user_id: str, module_id: str) -> ModuleProgress | None:
        return self._read(lambda ctx: ctx.progress.get(user_id, module_id))

    def get_current_grade(self, user_id: str, module_id: str) -> GradeRecord | None:
        return self._read(lambda ctx: ctx.ledger.get_current_grade(user_id, module_id))

    def get_grade_history(self, user_id: str, module_id: str) -> list[GradeRecord]:
        return self._read(lambda ctx: ctx.ledger.get_grade_history(user_id, module_id))

    def get_course_grade_snapshot(self, user_id: str, course_id: str) -> CourseGradeCalculation | None:
        return self._read(lambda ctx: ctx.course_grades.get_snapshot(user_id, course_id))

    def pending_remediations(self, course_id: str | None = None) -> list[RemediationRequest]:
        return self._read(lambda ctx: ctx.remediation.list_pending(course_id))

    def review_queue(self, course_id: str | None = None) -> list[Enrollment]:
        return self._read(lambda ctx: ctx.enrollments.list_by_status(EnrollmentStatus.NEEDS_REVIEW, course_id))

    def recent_audit(
        self,
        limit: int = 20,
        actor_id: str | None = None,
        action_type: str | None = None,
        target_id: str | None = None,
    ) -> list[AuditEntry]:
        return self._read(
            lambda ctx: query_audit_log(
                ctx.session, actor_id=actor_id, action_type=action_type, target_id=target_id, limit=limit
            )
        )
