"""
Change events emitted by components when they write a record.

An event carries before/after snapshots of one record, like a document-store
trigger payload. Its id is derived from the record's generation token and
version column, so a redelivered event has the same id as the original
delivery while a record re-created under the same document id does not.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

GRADES = "grades"
PROGRESS = "progress"
ENROLLMENTS = "enrollments"
REMEDIATION_REQUESTS = "remediation_requests"


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """Before/after snapshot of one written record."""

    collection: str
    document_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None

    def __post_init__(self):
        if self.before is None and self.after is None:
            raise ValueError("A change event needs a before or an after snapshot")

    @property
    def kind(self) -> ChangeKind:
        if self.before is None:
            return ChangeKind.CREATED
        if self.after is None:
            return ChangeKind.DELETED
        return ChangeKind.UPDATED

    @property
    def version(self) -> int:
        snapshot = self.after if self.after is not None else self.before
        return int(snapshot.get("version") or 0)

    @property
    def generation(self) -> str | None:
        """Token stamped when the record was inserted; changes if it is deleted and re-created."""
        snapshot = self.after if self.after is not None else self.before
        return snapshot.get("generation")

    @property
    def event_id(self) -> str:
        document = self.document_id
        if self.generation:
            document = f"{document}/{self.generation}"
        return f"{self.collection}/{document}/{self.kind.value}/v{self.version}"

    def changed(self, key: str) -> bool:
        """Whether ``key`` differs between the two snapshots."""
        return (self.before or {}).get(key) != (self.after or {}).get(key)


Publisher = Callable[[ChangeEvent], None]


def discard(event: ChangeEvent) -> None:
    """Publisher for components used outside the event bus."""
