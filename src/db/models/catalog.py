"""
Course catalog models.

Modules are authored elsewhere; the engine only reads their grading
configuration (weight, criticality, passing score).
"""

from __future__ import annotations

from sqlalchemy import Boolean, Float, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CourseModuleRow(Base):
    """A gradeable module within a course."""

    __tablename__ = "course_modules"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, default="")
    weight: Mapped[float] = mapped_column(Float, default=0.0)
    is_critical: Mapped[bool] = mapped_column(Boolean, default=False)
    passing_score: Mapped[float] = mapped_column(Float, default=80.0)
    order: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (Index("idx_course_modules_course", "course_id", "order"),)

    def __repr__(self) -> str:
        return f"<CourseModuleRow {self.id} course={self.course_id} weight={self.weight}>"
