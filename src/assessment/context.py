"""
Per-transaction component wiring.

An AssessmentContext binds every component to one session, one audit log and
one publisher. Commands and event handlers receive a fresh context for each
unit of work.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from config import Settings
from src.audit import AuditBuffer, AuditLog
from src.catalog import CourseCatalog
from src.course_grade import CourseGradeService
from src.enrollment import EnrollmentStateMachine, RemediationQueue
from src.events.change import Publisher, discard
from src.ledger import GradeLedger
from src.progress import ProgressTracker


class AssessmentContext:
    def __init__(
        self,
        session: Session,
        settings: Settings,
        audit_buffer: AuditBuffer | None = None,
        publish: Publisher = discard,
    ):
        self.session = session
        self.settings = settings
        self.publish = publish
        self.audit = AuditLog(session, audit_buffer)

        self.catalog = CourseCatalog(session, self.audit)
        self.ledger = GradeLedger(session, self.audit, publish)
        self.progress = ProgressTracker(session, self.audit, publish)
        self.enrollments = EnrollmentStateMachine(
            session,
            self.audit,
            publish,
            progress=self.progress,
            catalog=self.catalog,
            ledger=self.ledger,
        )
        self.remediation = RemediationQueue(session, self.audit, self.enrollments, publish)
        self.course_grades = CourseGradeService(
            session,
            self.catalog,
            self.ledger,
            self.audit,
            minimum_overall_score=settings.minimum_overall_score,
        )

    @property
    def system_actor(self) -> tuple[str, str]:
        """(id, name) recorded for automatic actions."""
        return self.settings.system_actor_id, self.settings.system_actor_name
