"""
Course grade callable operation.

Reads modules from the catalog and current grades from the ledger, computes
the calculation and stores it as a snapshot keyed by (learner, course). The
snapshot is a cache: recomputing always reproduces it from ledger state.
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.catalog import CourseCatalog
from src.core.errors import InvalidArgumentError, NotFoundError
from src.core.identity import Caller, require_authenticated
from src.db.models import CourseGradeSnapshotRow
from src.ledger import GradeLedger

from .calculator import DEFAULT_MINIMUM_OVERALL_SCORE, CourseGradeCalculation, calculate_course_grade


def snapshot_id(user_id: str, course_id: str) -> str:
    return f"{user_id}_{course_id}"


class CourseGradeService:
    def __init__(
        self,
        session: Session,
        catalog: CourseCatalog,
        ledger: GradeLedger,
        audit: AuditLog,
        minimum_overall_score: float = DEFAULT_MINIMUM_OVERALL_SCORE,
    ):
        self.session = session
        self.catalog = catalog
        self.ledger = ledger
        self.audit = audit
        self.minimum_overall_score = minimum_overall_score

    def calculate_course_grade(self, caller: Caller | None, user_id: str, course_id: str) -> CourseGradeCalculation:
        """
        Callable entry point.

        Raises:
            UnauthenticatedError: no caller
            InvalidArgumentError: user_id or course_id missing
            NotFoundError: the course has no modules
        """
        caller = require_authenticated(caller)
        return self.calculate_and_save(user_id, course_id, caller.uid, caller.name)

    def calculate_and_save(
        self,
        user_id: str,
        course_id: str,
        actor_id: str,
        actor_name: str,
    ) -> CourseGradeCalculation:
        if not user_id or not course_id:
            raise InvalidArgumentError("userId and courseId are required")

        logger.info(f"Calculating course grade for {user_id} in {course_id}")
        result = self.compute(user_id, course_id)
        self._save_snapshot(result)

        logger.info(
            f"Course grade for {user_id} in {course_id}: {result.overall_score}% "
            f"(passed={result.overall_passed}, {result.graded_modules}/{result.total_modules} graded)"
        )
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.COURSE_GRADE_CALCULATE,
            snapshot_id(user_id, course_id),
            f"Calculated course grade: {result.overall_score}% "
            f"({'PASSED' if result.overall_passed else 'NOT PASSED'}) for user {user_id}",
            {
                "overallScore": result.overall_score,
                "overallPassed": result.overall_passed,
                "allCriticalModulesPassed": result.all_critical_modules_passed,
            },
        )
        return result

    def compute(self, user_id: str, course_id: str) -> CourseGradeCalculation:
        """Calculate without persisting or auditing."""
        modules = self.catalog.get_course_modules(course_id)
        if not modules:
            raise NotFoundError(f"Course {course_id} has no modules", course_id=course_id)
        grades = self.ledger.get_current_grades(user_id, [m.id for m in modules])
        return calculate_course_grade(user_id, course_id, modules, grades, self.minimum_overall_score)

    def get_snapshot(self, user_id: str, course_id: str) -> CourseGradeCalculation | None:
        row = self.session.get(CourseGradeSnapshotRow, snapshot_id(user_id, course_id))
        return CourseGradeCalculation.from_dict(row.payload) if row else None

    def get_course_grades_for_course(self, course_id: str) -> list[CourseGradeCalculation]:
        stmt = select(CourseGradeSnapshotRow).where(CourseGradeSnapshotRow.course_id == course_id)
        return [CourseGradeCalculation.from_dict(row.payload) for row in self.session.scalars(stmt)]

    def get_user_course_grades(self, user_id: str) -> list[CourseGradeCalculation]:
        stmt = select(CourseGradeSnapshotRow).where(CourseGradeSnapshotRow.user_id == user_id)
        return [CourseGradeCalculation.from_dict(row.payload) for row in self.session.scalars(stmt)]

    def _save_snapshot(self, result: CourseGradeCalculation) -> None:
        key = snapshot_id(result.user_id, result.course_id)
        row = self.session.get(CourseGradeSnapshotRow, key)
        if row is None:
            row = CourseGradeSnapshotRow(id=key, user_id=result.user_id, course_id=result.course_id)
            self.session.add(row)
        row.overall_score = result.overall_score
        row.overall_passed = result.overall_passed
        row.payload = result.to_dict()
        row.calculated_at = result.calculated_at
        self.session.flush()
