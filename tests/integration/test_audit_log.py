"""
Integration tests for the audit log and the course catalog.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.audit import AuditAction, AuditBuffer, AuditLog, query_audit_log
from src.catalog import ModuleDefinition
from src.core.errors import AlreadyExistsError, NotFoundError, OutOfRangeError

pytestmark = pytest.mark.integration


class TestAuditLog:
    """Test AuditLog.record() and query_audit_log()."""

    def test_record_persists_and_buffers(self, session):
        buffer = AuditBuffer()
        audit = AuditLog(session, buffer)

        entry_id = audit.record("inst-1", "Dr. Lee", AuditAction.GRADE_ENTRY, "g1", "Entered grade",
                                {"after": {"score": 90}})

        assert entry_id is not None
        assert buffer.recent()[0].id == entry_id
        stored = query_audit_log(session, target_id="g1")
        assert stored[0].action_type == "GRADE_ENTRY"
        assert stored[0].metadata == {"after": {"score": 90}}

    def test_query_filters_newest_first(self, session):
        audit = AuditLog(session)
        audit.record("inst-1", "Dr. Lee", AuditAction.GRADE_ENTRY, "g1", "first")
        audit.record("inst-2", "Dr. Kim", AuditAction.GRADE_ENTRY, "g2", "second")
        audit.record("inst-1", "Dr. Lee", AuditAction.GRADE_CHANGE, "g3", "third")

        assert [e.details for e in query_audit_log(session)] == ["third", "second", "first"]
        assert [e.details for e in query_audit_log(session, actor_id="inst-1")] == ["third", "first"]
        assert [e.details for e in query_audit_log(session, action_type="GRADE_CHANGE")] == ["third"]
        assert len(query_audit_log(session, limit=1)) == 1

    def test_failed_write_does_not_abort_caller(self, ctx, session, monkeypatch):
        grade = ctx.ledger.enter_grade("nurse-1", "infection-control", 90, 80, "inst-1", "Dr. Lee")

        def broken_add(instance, _warn=True):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(session, "add", broken_add)
        entry_id = ctx.audit.record("inst-1", "Dr. Lee", AuditAction.GRADE_VISIBILITY, grade.id, "hidden")
        monkeypatch.undo()

        assert entry_id is None
        assert ctx.audit.buffer.recent()[0].details == "hidden"
        session.commit()
        assert ctx.ledger.get_grade(grade.id).score == 90


class TestCourseCatalog:
    """Test CourseCatalog."""

    def test_modules_in_order(self, ctx, course_modules):
        for module in reversed(course_modules):
            ctx.catalog.add_module(module)

        assert [m.id for m in ctx.catalog.get_course_modules("CARE-101")] == ["infection-control", "patient-safety"]
        assert ctx.catalog.course_exists("CARE-101") is True
        assert ctx.catalog.course_exists("NOPE") is False

    def test_duplicate_module(self, ctx, course_modules):
        ctx.catalog.add_module(course_modules[0])
        with pytest.raises(AlreadyExistsError):
            ctx.catalog.add_module(course_modules[0])

    def test_weight_range(self, ctx):
        with pytest.raises(OutOfRangeError):
            ctx.catalog.add_module(ModuleDefinition(id="m1", course_id="CARE-101", weight=120))

    def test_unknown_module(self, ctx):
        with pytest.raises(NotFoundError):
            ctx.catalog.get_module("missing")
        assert ctx.catalog.find_module("missing") is None

    def test_module_creation_audited(self, ctx, session, course_modules):
        ctx.catalog.add_module(course_modules[0], "admin-1", "Admin")

        entry = query_audit_log(session, action_type=AuditAction.MODULE_CREATE)[0]
        assert entry.actor_id == "admin-1"
        assert entry.metadata["isCritical"] is True
