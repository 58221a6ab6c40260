"""
Module progress model, one row per (learner, module).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, GenerationMixin, UTCDateTime, isoformat, utcnow


class ModuleProgressRow(GenerationMixin, Base):
    """
    Block completion and quiz attempt history for a learner in a module.

    ``completed_blocks`` is replaced wholesale on every write; in-place
    mutation of the JSON value would not be detected by the ORM.
    The ``version`` column gives optimistic concurrency on attempt counters.
    """

    __tablename__ = "progress"

    id: Mapped[str] = mapped_column(Text, primary_key=True)  # {user_id}_{module_id}
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(Text, nullable=False)
    module_id: Mapped[str] = mapped_column(Text, nullable=False)
    completed_blocks: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    overall_progress: Mapped[int] = mapped_column(Integer, default=0)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    awaiting_review: Mapped[bool] = mapped_column(Boolean, default=False)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    best_score: Mapped[float | None] = mapped_column(Float)
    last_score: Mapped[float | None] = mapped_column(Float)
    last_attempt_passed: Mapped[bool | None] = mapped_column(Boolean)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "courseId": self.course_id,
            "moduleId": self.module_id,
            "completedBlocks": dict(self.completed_blocks or {}),
            "overallProgress": self.overall_progress,
            "isComplete": self.is_complete,
            "awaitingReview": self.awaiting_review,
            "totalAttempts": self.total_attempts,
            "bestScore": self.best_score,
            "lastScore": self.last_score,
            "lastAttemptPassed": self.last_attempt_passed,
            "startedAt": isoformat(self.started_at),
            "completedAt": isoformat(self.completed_at),
            "generation": self.generation,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<ModuleProgressRow {self.id} progress={self.overall_progress} attempts={self.total_attempts}>"
