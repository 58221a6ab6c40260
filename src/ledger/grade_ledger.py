"""
Grade ledger.

Grades are never overwritten. A correction appends a new record pointing back
at the one it corrects (``correction_of``) and then marks the original with
``superseded_by``; that pointer is the only field a written grade may gain.
The current grade for a (learner, module) is the newest record without
``superseded_by``; it is always derived by query, never stored separately.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.core.errors import (
    FailedPreconditionError,
    InvalidArgumentError,
    NotFoundError,
    OutOfRangeError,
)
from src.core.scoring import CompetencyLevel, calculate_competency, round_half_up
from src.db.models import GradeRecordRow
from src.events.change import GRADES, ChangeEvent, Publisher, discard

# Snapshot keys that identify whose grade a record is.
IDENTITY_KEYS = ("userId", "moduleId")


@dataclass(frozen=True)
class GradeRecord:
    """A written grade entry."""

    id: str
    user_id: str
    module_id: str
    score: float
    passing_score: float
    passed: bool
    graded_by: str
    graded_at: datetime
    course_id: str | None = None
    graded_by_name: str = ""
    notes: str | None = None
    visible_to_student: bool = True
    correction_of: str | None = None
    correction_reason: str | None = None
    superseded_by: str | None = None

    @property
    def is_current(self) -> bool:
        return self.superseded_by is None

    @classmethod
    def from_row(cls, row: GradeRecordRow) -> GradeRecord:
        return cls(
            id=row.id,
            user_id=row.user_id,
            module_id=row.module_id,
            score=row.score,
            passing_score=row.passing_score,
            passed=row.passed,
            graded_by=row.graded_by,
            graded_at=row.graded_at,
            course_id=row.course_id,
            graded_by_name=row.graded_by_name,
            notes=row.notes,
            visible_to_student=row.visible_to_student,
            correction_of=row.correction_of,
            correction_reason=row.correction_reason,
            superseded_by=row.superseded_by,
        )


@dataclass
class CompetencySummary:
    """Counts over a learner's current grades."""

    total_graded: int = 0
    passed: int = 0
    failed: int = 0
    average_score: float = 0
    competency_breakdown: dict[CompetencyLevel, int] = field(
        default_factory=lambda: {level: 0 for level in CompetencyLevel}
    )


def assert_immutable_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> None:
    """Reject a grade change that alters who or what the grade belongs to."""
    if not before or not after:
        return
    for key in IDENTITY_KEYS:
        if before.get(key) != after.get(key):
            raise FailedPreconditionError(
                f"Cannot change {key} on existing grade {before.get('id')}",
                field=key,
                before=before.get(key),
                after=after.get(key),
            )


def _check_range(name: str, value: float) -> None:
    if value is None or not 0 <= value <= 100:
        raise OutOfRangeError(f"{name} must be between 0 and 100, got {value}", field=name)


def _outcome(score: float, passed: bool) -> str:
    return f"{score:g}% ({'PASSED' if passed else 'FAILED'})"


class GradeLedger:
    """Sole writer of grade records."""

    def __init__(self, session: Session, audit: AuditLog, publish: Publisher = discard):
        self.session = session
        self.audit = audit
        self.publish = publish

    # ========================================
    # Writes
    # ========================================

    def enter_grade(
        self,
        user_id: str,
        module_id: str,
        score: float,
        passing_score: float,
        grader_id: str,
        grader_name: str,
        notes: str | None = None,
        course_id: str | None = None,
    ) -> GradeRecord:
        """Append a new grade. Any earlier current grade is left as is."""
        if not user_id or not module_id:
            raise InvalidArgumentError("user_id and module_id are required")
        if not grader_id:
            raise InvalidArgumentError("grader_id is required")
        _check_range("score", score)
        _check_range("passing_score", passing_score)

        previous = self._current_row(user_id, module_id)
        passed = score >= passing_score
        row = GradeRecordRow(
            id=self._new_id(user_id, module_id),
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            score=score,
            passing_score=passing_score,
            passed=passed,
            graded_by=grader_id,
            graded_by_name=grader_name,
            notes=notes,
            visible_to_student=True,
        )
        self.session.add(row)
        self.session.flush()
        self.publish(ChangeEvent(GRADES, row.id, None, row.to_snapshot()))

        logger.info(f"Grade {row.id}: {_outcome(score, passed)} for {user_id} on {module_id}")
        self.audit.record(
            grader_id,
            grader_name,
            AuditAction.GRADE_ENTRY,
            row.id,
            f"Entered grade: {_outcome(score, passed)} for user {user_id} on module {module_id}"
            + (f" - Notes: {notes}" if notes else ""),
            {
                "before": {"score": previous.score, "passed": previous.passed} if previous else None,
                "after": {"score": score, "passed": passed},
                "userId": user_id,
                "moduleId": module_id,
            },
        )
        return GradeRecord.from_row(row)

    def correct_grade(
        self,
        original_id: str,
        new_score: float,
        passing_score: float,
        reason: str,
        grader_id: str,
        grader_name: str,
        notes: str | None = None,
    ) -> GradeRecord:
        """
        Append a correction and supersede the original.

        The correction is flushed before the original gains ``superseded_by``,
        so the pointer never refers to a missing record. Both writes share the
        caller's transaction.

        Raises:
            NotFoundError: original_id is unknown
            FailedPreconditionError: the original was already superseded
        """
        if not reason or not reason.strip():
            raise InvalidArgumentError("A correction reason is required")
        if not grader_id:
            raise InvalidArgumentError("grader_id is required")
        _check_range("score", new_score)
        _check_range("passing_score", passing_score)

        original = self._get_row(original_id)
        if original.superseded_by:
            raise FailedPreconditionError(
                "Cannot correct an already-superseded grade. Correct the most recent grade instead.",
                grade_id=original_id,
                superseded_by=original.superseded_by,
            )

        passed = new_score >= passing_score
        correction = GradeRecordRow(
            id=self._new_id(original.user_id, original.module_id),
            user_id=original.user_id,
            course_id=original.course_id,
            module_id=original.module_id,
            score=new_score,
            passing_score=passing_score,
            passed=passed,
            graded_by=grader_id,
            graded_by_name=grader_name,
            notes=notes,
            visible_to_student=True,
            correction_of=original.id,
            correction_reason=reason,
        )
        self.session.add(correction)
        self.session.flush()

        before = original.to_snapshot()
        original.superseded_by = correction.id
        self.session.flush()

        self.publish(ChangeEvent(GRADES, correction.id, None, correction.to_snapshot()))
        self.publish(ChangeEvent(GRADES, original.id, before, original.to_snapshot()))

        logger.info(
            f"Grade {original.id} corrected by {correction.id}: "
            f"{_outcome(original.score, original.passed)} -> {_outcome(new_score, passed)}"
        )
        self.audit.record(
            grader_id,
            grader_name,
            AuditAction.GRADE_CHANGE,
            correction.id,
            f"Grade correction: {original.id} → {new_score:g}% for user {original.user_id}. Reason: {reason}",
            {
                "before": {"score": original.score, "passed": original.passed},
                "after": {"score": new_score, "passed": passed},
                "correctionOf": original.id,
                "reason": reason,
            },
        )
        return GradeRecord.from_row(correction)

    def set_visibility(self, grade_id: str, visible: bool, actor_id: str, actor_name: str) -> GradeRecord:
        """Show or hide a grade from the learner."""
        row = self._get_row(grade_id)
        if row.visible_to_student == visible:
            return GradeRecord.from_row(row)

        before = row.to_snapshot()
        row.visible_to_student = visible
        self.session.flush()
        self.publish(ChangeEvent(GRADES, row.id, before, row.to_snapshot()))

        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.GRADE_VISIBILITY,
            grade_id,
            f"Grade visibility set to: {'visible' if visible else 'hidden'}",
        )
        return GradeRecord.from_row(row)

    # ========================================
    # Reads
    # ========================================

    def get_grade(self, grade_id: str) -> GradeRecord:
        return GradeRecord.from_row(self._get_row(grade_id))

    def get_current_grade(self, user_id: str, module_id: str) -> GradeRecord | None:
        row = self._current_row(user_id, module_id)
        return GradeRecord.from_row(row) if row else None

    def get_grade_history(self, user_id: str, module_id: str) -> list[GradeRecord]:
        """Every record for the (learner, module), oldest first."""
        stmt = (
            select(GradeRecordRow)
            .where(GradeRecordRow.user_id == user_id, GradeRecordRow.module_id == module_id)
            .order_by(GradeRecordRow.seq)
        )
        return [GradeRecord.from_row(row) for row in self.session.scalars(stmt)]

    def get_user_grades(self, user_id: str) -> list[GradeRecord]:
        """Current grades of a learner, newest first."""
        stmt = (
            select(GradeRecordRow)
            .where(GradeRecordRow.user_id == user_id, GradeRecordRow.superseded_by.is_(None))
            .order_by(GradeRecordRow.seq.desc())
        )
        return self._latest_per(self.session.scalars(stmt))

    def get_module_grades(self, module_id: str) -> list[GradeRecord]:
        """Current grades of every learner on a module, newest first."""
        stmt = (
            select(GradeRecordRow)
            .where(GradeRecordRow.module_id == module_id, GradeRecordRow.superseded_by.is_(None))
            .order_by(GradeRecordRow.seq.desc())
        )
        return self._latest_per(self.session.scalars(stmt), key="user_id")

    def get_current_grades(self, user_id: str, module_ids: list[str]) -> dict[str, GradeRecord]:
        """Current grade per module for the given modules (absent = ungraded)."""
        if not module_ids:
            return {}
        stmt = (
            select(GradeRecordRow)
            .where(
                GradeRecordRow.user_id == user_id,
                GradeRecordRow.module_id.in_(module_ids),
                GradeRecordRow.superseded_by.is_(None),
            )
            .order_by(GradeRecordRow.seq.desc())
        )
        return {g.module_id: g for g in self._latest_per(self.session.scalars(stmt))}

    # ========================================
    # Competency
    # ========================================

    @staticmethod
    def calculate_competency(score: float) -> CompetencyLevel:
        return calculate_competency(score)

    def get_user_competency_summary(self, user_id: str) -> CompetencySummary:
        grades = self.get_user_grades(user_id)
        summary = CompetencySummary(total_graded=len(grades))
        if not grades:
            return summary

        summary.passed = sum(1 for g in grades if g.passed)
        summary.failed = summary.total_graded - summary.passed
        summary.average_score = round_half_up(sum(g.score for g in grades) / len(grades))
        for g in grades:
            summary.competency_breakdown[calculate_competency(g.score)] += 1
        return summary

    # ========================================
    # Helpers
    # ========================================

    def _get_row(self, grade_id: str) -> GradeRecordRow:
        row = self.session.scalar(select(GradeRecordRow).where(GradeRecordRow.id == grade_id))
        if row is None:
            raise NotFoundError(f"Grade {grade_id} not found", grade_id=grade_id)
        return row

    def _current_row(self, user_id: str, module_id: str) -> GradeRecordRow | None:
        stmt = (
            select(GradeRecordRow)
            .where(
                GradeRecordRow.user_id == user_id,
                GradeRecordRow.module_id == module_id,
                GradeRecordRow.superseded_by.is_(None),
            )
            .order_by(GradeRecordRow.seq.desc())
            .limit(1)
        )
        return self.session.scalar(stmt)

    @staticmethod
    def _latest_per(rows, key: str = "module_id") -> list[GradeRecord]:
        """First row per ``key`` value; rows must arrive newest first."""
        seen: set[str] = set()
        grades = []
        for row in rows:
            value = getattr(row, key)
            if value not in seen:
                seen.add(value)
                grades.append(GradeRecord.from_row(row))
        return grades

    @staticmethod
    def _new_id(user_id: str, module_id: str) -> str:
        return f"{user_id}_{module_id}_{uuid.uuid4().hex[:12]}"
