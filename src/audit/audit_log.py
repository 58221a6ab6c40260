"""
Audit log.

Every component receives an AuditLog and records one entry per state-changing
operation. The log is a write-only sink for the engine: nothing reads it to
make decisions.

Writes are best-effort. The entry always lands in the in-memory buffer and the
application log; the database insert runs inside a SAVEPOINT so a failed
insert is logged and dropped without rolling back the caller's transaction.
"""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import AuditLogRow


class AuditAction(str, Enum):
    """Categorized action types."""

    MODULE_CREATE = "MODULE_CREATE"
    MODULE_UPDATE = "MODULE_UPDATE"
    MODULE_COMPLETE = "MODULE_COMPLETE"
    BLOCK_UPDATE = "BLOCK_UPDATE"
    PROGRESS_CREATE = "PROGRESS_CREATE"
    PROGRESS_DELETE = "PROGRESS_DELETE"
    ASSESSMENT_SUBMIT = "ASSESSMENT_SUBMIT"
    GRADE_ENTRY = "GRADE_ENTRY"
    GRADE_CHANGE = "GRADE_CHANGE"
    GRADE_UPDATE = "GRADE_UPDATE"
    GRADE_VISIBILITY = "GRADE_VISIBILITY"
    COURSE_GRADE_CALCULATE = "COURSE_GRADE_CALCULATE"
    ENROLLMENT_CREATE = "ENROLLMENT_CREATE"
    ENROLLMENT_UPDATE = "ENROLLMENT_UPDATE"
    ENROLLMENT_TRANSITION = "ENROLLMENT_TRANSITION"
    REMEDIATION_REQUEST = "REMEDIATION_REQUEST"
    REMEDIATION_APPROVED = "REMEDIATION_APPROVED"
    REMEDIATION_DENIED = "REMEDIATION_DENIED"


@dataclass(frozen=True)
class AuditEntry:
    """One audit record as shown in audit displays."""

    id: str
    actor_id: str
    actor_name: str
    action_type: str
    target_id: str
    details: str
    timestamp: datetime
    metadata: dict[str, Any] | None = field(default=None)

    @classmethod
    def from_row(cls, row: AuditLogRow) -> AuditEntry:
        return cls(
            id=row.id,
            actor_id=row.actor_id,
            actor_name=row.actor_name,
            action_type=row.action_type,
            target_id=row.target_id,
            details=row.details,
            timestamp=row.timestamp,
            metadata=row.metadata_,
        )


class AuditBuffer:
    """Bounded in-memory list of recent entries, newest first."""

    def __init__(self, limit: int = 100):
        self._entries: deque[AuditEntry] = deque(maxlen=limit)

    def add(self, entry: AuditEntry) -> None:
        self._entries.appendleft(entry)

    def recent(self, limit: int | None = None) -> list[AuditEntry]:
        entries = list(self._entries)
        return entries if limit is None else entries[:limit]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class AuditLog:
    """Audit sink bound to the current unit of work's session."""

    def __init__(self, session: Session, buffer: AuditBuffer | None = None):
        self.session = session
        self.buffer = buffer if buffer is not None else AuditBuffer()

    def record(
        self,
        actor_id: str,
        actor_name: str,
        action_type: AuditAction | str,
        target_id: str,
        details: str,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """
        Record one action.

        Returns:
            The entry id, or None when the entry could not be persisted
            (it is still kept in memory and in the application log).
        """
        action = action_type.value if isinstance(action_type, AuditAction) else str(action_type)
        entry = AuditEntry(
            id=uuid.uuid4().hex,
            actor_id=actor_id,
            actor_name=actor_name,
            action_type=action,
            target_id=target_id,
            details=details,
            timestamp=datetime.now(UTC),
            metadata=metadata,
        )
        self.buffer.add(entry)
        logger.info(f"AUDIT {action}: {actor_name} [{target_id}] {details}")

        try:
            with self.session.begin_nested():
                self.session.add(
                    AuditLogRow(
                        id=entry.id,
                        actor_id=entry.actor_id,
                        actor_name=entry.actor_name,
                        action_type=entry.action_type,
                        target_id=entry.target_id,
                        details=entry.details,
                        timestamp=entry.timestamp,
                        metadata_=entry.metadata,
                    )
                )
        except SQLAlchemyError as e:
            logger.error(f"Audit log failed to persist ({action} on {target_id}): {e}")
            logger.warning(f"Audit entry {entry.id} retained in memory only")
            return None
        return entry.id


def query_audit_log(
    session: Session,
    *,
    actor_id: str | None = None,
    action_type: AuditAction | str | None = None,
    target_id: str | None = None,
    limit: int = 50,
) -> list[AuditEntry]:
    """Read persisted entries, newest first, with optional filters."""
    stmt = select(AuditLogRow)
    if actor_id:
        stmt = stmt.where(AuditLogRow.actor_id == actor_id)
    if action_type:
        value = action_type.value if isinstance(action_type, AuditAction) else action_type
        stmt = stmt.where(AuditLogRow.action_type == value)
    if target_id:
        stmt = stmt.where(AuditLogRow.target_id == target_id)
    stmt = stmt.order_by(AuditLogRow.seq.desc()).limit(limit)
    return [AuditEntry.from_row(row) for row in session.scalars(stmt)]
