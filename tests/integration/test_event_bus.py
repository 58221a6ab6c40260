"""
Integration tests for the change-event bus: post-commit queuing, idempotent
redelivery and retries.
"""

from datetime import timedelta

import pytest

from src.core.errors import InvalidArgumentError
from src.db.models.base import utcnow
from src.events import GRADES, ChangeEvent, ChangeKind
from src.events.bus import EventBus

pytestmark = pytest.mark.integration


@pytest.fixture
def bus(session_factory, settings):
    return EventBus(session_factory, settings.model_copy(update={"event_max_retries": 2}))


@pytest.fixture
def event():
    return ChangeEvent(GRADES, "g1", None, {"id": "g1", "version": 1})


class Recorder:
    """Handler that records calls and optionally fails."""

    def __init__(self, failures=0, error=RuntimeError):
        self.calls = []
        self.failures = failures
        self.error = error
        self.__name__ = "recorder"

    def __call__(self, ctx, event):
        self.calls.append(event.event_id)
        if len(self.calls) <= self.failures:
            raise self.error("handler failed")


class TestQueuing:
    """Test unit_of_work() and run_pending()."""

    def test_events_queued_after_commit(self, bus, event):
        handler = Recorder()
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        with bus.unit_of_work() as ctx:
            ctx.publish(event)
            assert len(bus.pending) == 0

        assert len(bus.pending) == 1
        assert bus.run_pending() == 1
        assert handler.calls == [event.event_id]

    def test_rolled_back_work_publishes_nothing(self, bus, event):
        bus.subscribe(GRADES, ChangeKind.CREATED, Recorder())

        with pytest.raises(RuntimeError):
            with bus.unit_of_work() as ctx:
                ctx.publish(event)
                raise RuntimeError("boom")

        assert len(bus.pending) == 0

    def test_only_matching_kinds_delivered(self, bus, event):
        handler = Recorder()
        bus.subscribe(GRADES, ChangeKind.UPDATED, handler)

        bus.dispatch(event)

        assert handler.calls == []


class TestIdempotency:
    """Test at-least-once redelivery."""

    def test_redelivered_event_skipped(self, bus, event):
        handler = Recorder()
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        bus.dispatch(event)
        bus.dispatch(ChangeEvent(GRADES, "g1", None, {"id": "g1", "version": 1}))

        assert len(handler.calls) == 1

    def test_each_handler_tracked_separately(self, bus, event):
        first, second = Recorder(), Recorder()
        bus.subscribe(GRADES, ChangeKind.CREATED, first, name="first")
        bus.subscribe(GRADES, ChangeKind.CREATED, second, name="second")

        bus.dispatch(event)
        bus.dispatch(event)

        assert len(first.calls) == 1
        assert len(second.calls) == 1

    def test_new_version_is_a_new_event(self, bus):
        handler = Recorder()
        bus.subscribe(GRADES, ChangeKind.UPDATED, handler)

        bus.dispatch(ChangeEvent(GRADES, "g1", {"version": 1}, {"version": 2}))
        bus.dispatch(ChangeEvent(GRADES, "g1", {"version": 2}, {"version": 3}))

        assert len(handler.calls) == 2


class TestFailures:
    """Test retry and failure handling."""

    def test_transient_failure_retried(self, bus, event):
        handler = Recorder(failures=1)
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        bus.dispatch(event)
        assert len(bus.pending) == 1

        bus.run_pending()

        assert len(handler.calls) == 2
        assert list(bus.failed) == []

    def test_retries_exhausted(self, bus, event):
        handler = Recorder(failures=10)
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        bus.dispatch(event)
        bus.run_pending()

        assert len(handler.calls) == 3
        assert len(bus.failed) == 1
        assert bus.failed[0].retry_count == 3
        assert "handler failed" in bus.failed[0].error_message

    def test_assessment_error_not_retried(self, bus, event):
        handler = Recorder(failures=10, error=InvalidArgumentError)
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        bus.dispatch(event)

        assert len(handler.calls) == 1
        assert len(bus.pending) == 0
        assert bus.failed[0].retry_count == 0

    def test_failed_delivery_not_marked_processed(self, bus, event):
        handler = Recorder(failures=1, error=InvalidArgumentError)
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)

        bus.dispatch(event)
        bus.dispatch(event)

        assert len(handler.calls) == 2


class TestMaintenance:
    """Test processed-marker pruning and the failed-delivery bound."""

    def test_prune_keeps_recent_markers(self, bus, event):
        bus.subscribe(GRADES, ChangeKind.CREATED, Recorder())
        bus.dispatch(event)

        assert bus.prune_processed() == 0

    def test_prune_removes_old_markers(self, bus, event):
        handler = Recorder()
        bus.subscribe(GRADES, ChangeKind.CREATED, handler)
        bus.dispatch(event)

        assert bus.prune_processed(utcnow() + timedelta(seconds=1)) == 1
        bus.dispatch(event)
        assert len(handler.calls) == 2

    def test_failed_deliveries_bounded(self, session_factory, settings):
        bus = EventBus(session_factory, settings.model_copy(update={"failed_delivery_limit": 2}))
        bus.subscribe(GRADES, ChangeKind.CREATED, Recorder(failures=10, error=InvalidArgumentError))

        for n in range(3):
            bus.dispatch(ChangeEvent(GRADES, f"g{n}", None, {"id": f"g{n}", "version": 1}))

        assert [d.event.document_id for d in bus.failed] == ["g1", "g2"]
