"""
Unit tests for change events and the audit buffer.
"""

import pytest

from src.audit import AuditBuffer
from src.audit.audit_log import AuditEntry
from src.core.errors import FailedPreconditionError
from src.events import ChangeEvent, ChangeKind
from src.ledger import assert_immutable_fields


class TestChangeEvent:
    """Test ChangeEvent kind, id and diffing."""

    def test_kind_from_snapshots(self):
        assert ChangeEvent("grades", "g1", None, {"version": 1}).kind is ChangeKind.CREATED
        assert ChangeEvent("grades", "g1", {"version": 1}, {"version": 2}).kind is ChangeKind.UPDATED
        assert ChangeEvent("grades", "g1", {"version": 2}, None).kind is ChangeKind.DELETED

    def test_needs_a_snapshot(self):
        with pytest.raises(ValueError):
            ChangeEvent("grades", "g1", None, None)

    def test_event_id_stable_across_redelivery(self):
        first = ChangeEvent("progress", "u1_m1", {"version": 3}, {"version": 4, "overallProgress": 50})
        again = ChangeEvent("progress", "u1_m1", {"version": 3}, {"version": 4, "overallProgress": 50})

        assert first.event_id == again.event_id == "progress/u1_m1/updated/v4"

    def test_event_id_includes_generation(self):
        original = ChangeEvent("progress", "u1_m1", None, {"version": 1, "generation": "a1"})
        recreated = ChangeEvent("progress", "u1_m1", None, {"version": 1, "generation": "b2"})
        deleted = ChangeEvent("progress", "u1_m1", {"version": 3, "generation": "a1"}, None)

        assert original.event_id == "progress/u1_m1/a1/created/v1"
        assert recreated.event_id != original.event_id
        assert deleted.event_id == "progress/u1_m1/a1/deleted/v3"

    def test_changed(self):
        event = ChangeEvent("enrollments", "e1", {"status": "in_progress", "progress": 50},
                            {"status": "in_progress", "progress": 60})

        assert event.changed("progress") is True
        assert event.changed("status") is False


class TestImmutableFields:
    """Test assert_immutable_fields()."""

    def test_identity_change_rejected(self):
        with pytest.raises(FailedPreconditionError):
            assert_immutable_fields({"id": "g1", "userId": "u1", "moduleId": "m1"},
                                    {"id": "g1", "userId": "u2", "moduleId": "m1"})

    def test_other_changes_allowed(self):
        assert_immutable_fields({"userId": "u1", "moduleId": "m1", "supersededBy": None},
                                {"userId": "u1", "moduleId": "m1", "supersededBy": "g2"})


class TestAuditBuffer:
    """Test the in-memory audit buffer."""

    @staticmethod
    def entry(n):
        from datetime import UTC, datetime

        return AuditEntry(id=str(n), actor_id="a", actor_name="A", action_type="GRADE_ENTRY",
                          target_id="t", details=f"entry {n}", timestamp=datetime.now(UTC))

    def test_newest_first_and_bounded(self):
        buffer = AuditBuffer(limit=3)
        for n in range(5):
            buffer.add(self.entry(n))

        assert len(buffer) == 3
        assert [e.id for e in buffer.recent()] == ["4", "3", "2"]
        assert [e.id for e in buffer.recent(1)] == ["4"]

    def test_clear(self):
        buffer = AuditBuffer()
        buffer.add(self.entry(1))
        buffer.clear()
        assert len(buffer) == 0
