"""
Grade ledger models.

GradeRecordRow is append-only: once a row has been flushed, only
``superseded_by`` and ``visible_to_student`` may change. Attempts to change
any other column raise FailedPreconditionError before anything is written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Index, Integer, Text, inspect
from sqlalchemy.orm import Mapped, mapped_column, validates
from sqlalchemy.orm.base import NO_VALUE

from src.core.errors import FailedPreconditionError

from .base import Base, GenerationMixin, UTCDateTime, isoformat, utcnow

IMMUTABLE_GRADE_FIELDS = (
    "id",
    "user_id",
    "course_id",
    "module_id",
    "score",
    "passing_score",
    "passed",
    "graded_by",
    "graded_by_name",
    "graded_at",
    "notes",
    "correction_of",
    "correction_reason",
)


class GradeRecordRow(GenerationMixin, Base):
    """One immutable grade entry (original or correction)."""

    __tablename__ = "grades"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    course_id: Mapped[str | None] = mapped_column(Text)
    module_id: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    passing_score: Mapped[float] = mapped_column(Float, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    graded_by: Mapped[str] = mapped_column(Text, nullable=False)
    graded_by_name: Mapped[str] = mapped_column(Text, default="")
    graded_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    notes: Mapped[str | None] = mapped_column(Text)
    visible_to_student: Mapped[bool] = mapped_column(Boolean, default=True)
    correction_of: Mapped[str | None] = mapped_column(Text)
    correction_reason: Mapped[str | None] = mapped_column(Text)
    superseded_by: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("idx_grades_user_module", "user_id", "module_id", "superseded_by"),
        Index("idx_grades_module", "module_id", "superseded_by"),
    )

    @validates(*IMMUTABLE_GRADE_FIELDS)
    def _guard_immutable(self, key: str, value: Any) -> Any:
        state = inspect(self)
        if state.has_identity:
            current = state.dict.get(key, NO_VALUE)
            if current is NO_VALUE or current != value:
                raise FailedPreconditionError(
                    f"Cannot change {key} on existing grade {self.id}",
                    field=key,
                )
        return value

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "courseId": self.course_id,
            "moduleId": self.module_id,
            "score": self.score,
            "passingScore": self.passing_score,
            "passed": self.passed,
            "gradedBy": self.graded_by,
            "gradedByName": self.graded_by_name,
            "gradedAt": isoformat(self.graded_at),
            "notes": self.notes,
            "visibleToStudent": self.visible_to_student,
            "correctionOf": self.correction_of,
            "correctionReason": self.correction_reason,
            "supersededBy": self.superseded_by,
            "generation": self.generation,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<GradeRecordRow {self.id} user={self.user_id} module={self.module_id} score={self.score}>"


class CourseGradeSnapshotRow(Base):
    """Persisted course grade calculation, reproducible by recomputation."""

    __tablename__ = "course_grades"

    id: Mapped[str] = mapped_column(Text, primary_key=True)  # {user_id}_{course_id}
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    course_id: Mapped[str] = mapped_column(Text, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, default=0.0)
    overall_passed: Mapped[bool] = mapped_column(Boolean, default=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    calculated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)
