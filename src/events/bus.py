"""
In-process change-event bus with at-least-once delivery.

Components publish ChangeEvents while a unit of work is open; the events are
queued only after that unit of work commits. Each (event, handler) delivery
runs in its own transaction together with a ProcessedEventRow marker, so a
redelivered event is skipped by handlers that already applied it.

Failed deliveries:
- AssessmentError (validation, precondition, not-found ...) is final and the
  delivery moves to ``failed``
- anything else is re-queued until ``event_max_retries`` is exhausted

Only the most recent ``failed_delivery_limit`` failures are kept for
inspection. Processed markers accumulate until ``prune_processed`` drops
those past ``processed_event_retention_days``.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import delete
from sqlalchemy.orm import Session

from config import Settings, get_settings
from src.assessment.context import AssessmentContext
from src.audit import AuditBuffer
from src.core.errors import AssessmentError
from src.db.database import session_scope
from src.db.models import ProcessedEventRow
from src.db.models.base import utcnow
from src.events.change import ChangeEvent, ChangeKind

Handler = Callable[[AssessmentContext, ChangeEvent], None]


@dataclass(frozen=True)
class Subscription:
    collection: str
    kinds: frozenset[ChangeKind]
    handler: Handler
    name: str

    def matches(self, event: ChangeEvent) -> bool:
        return event.collection == self.collection and event.kind in self.kinds


@dataclass
class Delivery:
    """One event queued for one handler."""

    event: ChangeEvent
    subscription: Subscription
    retry_count: int = 0
    error_message: str | None = None


class EventBus:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings | None = None,
        audit_buffer: AuditBuffer | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.audit_buffer = audit_buffer or AuditBuffer(self.settings.audit_memory_limit)
        self.subscriptions: list[Subscription] = []
        self.pending: deque[Delivery] = deque()
        self.failed: deque[Delivery] = deque(maxlen=self.settings.failed_delivery_limit)

    def subscribe(
        self,
        collection: str,
        kinds: ChangeKind | tuple[ChangeKind, ...],
        handler: Handler,
        name: str | None = None,
    ) -> Subscription:
        if isinstance(kinds, ChangeKind):
            kinds = (kinds,)
        subscription = Subscription(collection, frozenset(kinds), handler, name or handler.__name__)
        self.subscriptions.append(subscription)
        return subscription

    @contextmanager
    def unit_of_work(self) -> Generator[AssessmentContext, None, None]:
        """Transactional scope; events published inside are queued after commit."""
        published: list[ChangeEvent] = []
        with session_scope(self.session_factory) as session:
            yield AssessmentContext(session, self.settings, self.audit_buffer, publish=published.append)
        for event in published:
            self._enqueue(event)

    def run_pending(self) -> int:
        """Deliver queued events in FIFO order, including follow-up events. Returns deliveries made."""
        delivered = 0
        while self.pending:
            self._deliver(self.pending.popleft())
            delivered += 1
        return delivered

    def dispatch(self, event: ChangeEvent) -> None:
        """Deliver one event to its handlers now (follow-up events are queued)."""
        for subscription in self._subscribers(event):
            self._deliver(Delivery(event, subscription))

    def prune_processed(self, before: datetime | None = None) -> int:
        """Delete processed-event markers recorded before ``before`` (default: the retention window)."""
        if before is None:
            before = utcnow() - timedelta(days=self.settings.processed_event_retention_days)
        with session_scope(self.session_factory) as session:
            result = session.execute(delete(ProcessedEventRow).where(ProcessedEventRow.processed_at < before))
            removed = result.rowcount or 0
        logger.info(f"Pruned {removed} processed-event markers older than {before.isoformat()}")
        return removed

    def _subscribers(self, event: ChangeEvent) -> list[Subscription]:
        return [s for s in self.subscriptions if s.matches(event)]

    def _enqueue(self, event: ChangeEvent) -> None:
        for subscription in self._subscribers(event):
            self.pending.append(Delivery(event, subscription))

    def _deliver(self, delivery: Delivery) -> None:
        event = delivery.event
        name = delivery.subscription.name
        try:
            with self.unit_of_work() as ctx:
                if ctx.session.get(ProcessedEventRow, (event.event_id, name)) is not None:
                    logger.debug(f"Skipping {event.event_id} for {name}: already processed")
                    return
                delivery.subscription.handler(ctx, event)
                ctx.session.add(ProcessedEventRow(event_id=event.event_id, handler=name))
        except AssessmentError as e:
            delivery.error_message = str(e)
            self.failed.append(delivery)
            logger.error(f"Handler {name} rejected {event.event_id}: {e}")
        except Exception as e:  # Intentionally broad - any other failure is retried
            delivery.retry_count += 1
            delivery.error_message = str(e)
            if delivery.retry_count <= self.settings.event_max_retries:
                self.pending.append(delivery)
                logger.warning(
                    f"Handler {name} failed on {event.event_id} "
                    f"(attempt {delivery.retry_count}/{self.settings.event_max_retries}), re-queued: {e}"
                )
            else:
                self.failed.append(delivery)
                logger.error(
                    f"Handler {name} failed permanently on {event.event_id} "
                    f"after {delivery.retry_count} attempts: {e}"
                )
