# SQLAlchemy models
from .audit import AuditLogRow
from .base import Base
from .catalog import CourseModuleRow
from .enrollment import EnrollmentRow, RemediationRequestRow
from .events import ProcessedEventRow
from .grades import IMMUTABLE_GRADE_FIELDS, CourseGradeSnapshotRow, GradeRecordRow
from .progress import ModuleProgressRow

__all__ = [
    # Base
    "Base",
    # Catalog
    "CourseModuleRow",
    # Ledger
    "GradeRecordRow",
    "CourseGradeSnapshotRow",
    "IMMUTABLE_GRADE_FIELDS",
    # Progress
    "ModuleProgressRow",
    # Enrollment
    "EnrollmentRow",
    "RemediationRequestRow",
    # Audit
    "AuditLogRow",
    # Events
    "ProcessedEventRow",
]
