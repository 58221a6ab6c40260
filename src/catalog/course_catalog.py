"""
Course catalog.

Course and module authoring happen elsewhere; the engine needs only each
module's grading configuration: weight (percentage contribution to the course
score), criticality and passing score.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.core.errors import AlreadyExistsError, InvalidArgumentError, NotFoundError, OutOfRangeError
from src.db.models import CourseModuleRow

DEFAULT_PASSING_SCORE = 80.0


@dataclass(frozen=True)
class ModuleDefinition:
    """Grading configuration of one course module."""

    id: str
    course_id: str
    weight: float
    is_critical: bool = False
    passing_score: float = DEFAULT_PASSING_SCORE
    title: str = ""
    order: int = 0

    @classmethod
    def from_row(cls, row: CourseModuleRow) -> ModuleDefinition:
        return cls(
            id=row.id,
            course_id=row.course_id,
            weight=row.weight,
            is_critical=row.is_critical,
            passing_score=row.passing_score,
            title=row.title,
            order=row.order,
        )


class CourseCatalog:
    """Module lookups for a course."""

    def __init__(self, session: Session, audit: AuditLog | None = None):
        self.session = session
        self.audit = audit

    def add_module(
        self,
        module: ModuleDefinition,
        actor_id: str = "system",
        actor_name: str = "System",
    ) -> ModuleDefinition:
        """Register a module's grading configuration."""
        if not module.id or not module.course_id:
            raise InvalidArgumentError("Module id and course id are required")
        for name, value in (("weight", module.weight), ("passing_score", module.passing_score)):
            if not 0 <= value <= 100:
                raise OutOfRangeError(f"Module {name} must be between 0 and 100, got {value}", field=name)
        if self.session.get(CourseModuleRow, module.id) is not None:
            raise AlreadyExistsError(f"Module {module.id} already exists", module_id=module.id)

        self.session.add(
            CourseModuleRow(
                id=module.id,
                course_id=module.course_id,
                title=module.title,
                weight=module.weight,
                is_critical=module.is_critical,
                passing_score=module.passing_score,
                order=module.order,
            )
        )
        self.session.flush()
        logger.debug(f"Added module {module.id} to course {module.course_id} (weight={module.weight})")

        if self.audit:
            self.audit.record(
                actor_id,
                actor_name,
                AuditAction.MODULE_CREATE,
                module.id,
                f"Added module '{module.title or module.id}' to course {module.course_id}",
                {"weight": module.weight, "isCritical": module.is_critical, "passingScore": module.passing_score},
            )
        return module

    def get_module(self, module_id: str) -> ModuleDefinition:
        row = self.session.get(CourseModuleRow, module_id)
        if row is None:
            raise NotFoundError(f"Module {module_id} not found", module_id=module_id)
        return ModuleDefinition.from_row(row)

    def find_module(self, module_id: str) -> ModuleDefinition | None:
        row = self.session.get(CourseModuleRow, module_id)
        return ModuleDefinition.from_row(row) if row else None

    def get_course_modules(self, course_id: str) -> list[ModuleDefinition]:
        """Modules of a course in display order."""
        stmt = (
            select(CourseModuleRow)
            .where(CourseModuleRow.course_id == course_id)
            .order_by(CourseModuleRow.order, CourseModuleRow.id)
        )
        return [ModuleDefinition.from_row(row) for row in self.session.scalars(stmt)]

    def course_exists(self, course_id: str) -> bool:
        stmt = select(CourseModuleRow.id).where(CourseModuleRow.course_id == course_id).limit(1)
        return self.session.scalar(stmt) is not None
