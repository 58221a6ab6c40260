"""
Enrollment and remediation request models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Float, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, GenerationMixin, UTCDateTime, isoformat, utcnow


class EnrollmentRow(GenerationMixin, Base):
    """A learner's enrollment in a course; status is owned by the state machine."""

    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(Text, primary_key=True)  # {user_id}_{course_id}
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(Text, default="not_started", index=True)
    quiz_answers: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    score: Mapped[float | None] = mapped_column(Float)
    enrolled_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "courseId": self.course_id,
            "progress": self.progress,
            "status": self.status,
            "quizAnswers": self.quiz_answers,
            "score": self.score,
            "enrolledAt": isoformat(self.enrolled_at),
            "completedAt": isoformat(self.completed_at),
            "generation": self.generation,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<EnrollmentRow {self.id} status={self.status} progress={self.progress}>"


class RemediationRequestRow(GenerationMixin, Base):
    """Pending/approved/denied request to reset a learner's module after repeated failure."""

    __tablename__ = "remediation_requests"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    module_id: Mapped[str] = mapped_column(Text, nullable=False)
    course_id: Mapped[str | None] = mapped_column(Text)
    reason: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(Text, default="pending")  # 'pending', 'approved', 'denied'
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    source_key: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    resolved_by: Mapped[str | None] = mapped_column(Text)
    resolved_by_name: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (Index("idx_remediation_user_module", "user_id", "module_id", "status"),)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "moduleId": self.module_id,
            "courseId": self.course_id,
            "reason": self.reason,
            "status": self.status,
            "attemptCount": self.attempt_count,
            "sourceKey": self.source_key,
            "requestedAt": isoformat(self.requested_at),
            "resolvedBy": self.resolved_by,
            "resolvedByName": self.resolved_by_name,
            "resolvedAt": isoformat(self.resolved_at),
            "resolutionNotes": self.resolution_notes,
            "generation": self.generation,
            "version": self.version,
        }
