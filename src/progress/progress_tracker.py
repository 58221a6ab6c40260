"""
Progress tracker.

Owns one progress record per (learner, module). Completion only moves
forward: a completed block stays completed, ``overall_progress`` never drops
and ``is_complete`` latches with a single ``completed_at`` stamp. The one
exception is ``reset``, used when a remediation request is approved.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.audit import AuditAction, AuditLog
from src.core.errors import InvalidArgumentError, NotFoundError, OutOfRangeError
from src.core.scoring import percent, round_half_up
from src.db.models import ModuleProgressRow
from src.events.change import PROGRESS, ChangeEvent, Publisher, discard


def progress_id(user_id: str, module_id: str) -> str:
    return f"{user_id}_{module_id}"


@dataclass(frozen=True)
class ModuleProgress:
    """Read view of a progress record."""

    id: str
    user_id: str
    course_id: str
    module_id: str
    completed_blocks: dict[str, dict[str, Any]] = field(default_factory=dict)
    overall_progress: int = 0
    is_complete: bool = False
    awaiting_review: bool = False
    total_attempts: int = 0
    best_score: float | None = None
    last_score: float | None = None
    last_attempt_passed: bool | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def completed_count(self) -> int:
        return sum(1 for block in self.completed_blocks.values() if block.get("completed"))

    @classmethod
    def from_row(cls, row: ModuleProgressRow) -> ModuleProgress:
        return cls(
            id=row.id,
            user_id=row.user_id,
            course_id=row.course_id,
            module_id=row.module_id,
            completed_blocks=dict(row.completed_blocks or {}),
            overall_progress=row.overall_progress,
            is_complete=row.is_complete,
            awaiting_review=row.awaiting_review,
            total_attempts=row.total_attempts,
            best_score=row.best_score,
            last_score=row.last_score,
            last_attempt_passed=row.last_attempt_passed,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


def calculate_course_completion(records: Sequence[ModuleProgress], total_modules: int) -> int:
    """Average module progress across the course, counting unstarted modules as 0."""
    if total_modules <= 0:
        return 0
    total = sum(r.overall_progress for r in records)
    return min(100, int(round_half_up(total / total_modules)))


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ProgressTracker:
    """Sole writer of module progress records."""

    def __init__(self, session: Session, audit: AuditLog, publish: Publisher = discard):
        self.session = session
        self.audit = audit
        self.publish = publish

    # ========================================
    # Writes
    # ========================================

    def initialize(self, user_id: str, course_id: str, module_id: str) -> ModuleProgress:
        """Create a zero-state record if none exists. Re-initializing is a no-op."""
        return ModuleProgress.from_row(self._ensure_row(user_id, course_id, module_id))

    def mark_block_complete(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        block_id: str,
        total_required_blocks: int,
        actor_id: str,
        actor_name: str,
    ) -> ModuleProgress:
        """Mark a content block complete and recompute module progress."""
        self._check_blocks(block_id, total_required_blocks)
        row = self._ensure_row(user_id, course_id, module_id)
        before = row.to_snapshot()

        blocks = dict(row.completed_blocks or {})
        entry = dict(blocks.get(block_id) or {})
        entry.update({"blockId": block_id, "completed": True})
        entry["completedAt"] = entry.get("completedAt") or _now_iso()
        blocks[block_id] = entry

        self._apply_completion(row, blocks, total_required_blocks)
        self._flush_update(row, before)

        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.BLOCK_UPDATE,
            block_id,
            f"Completed block in module {module_id} ({row.overall_progress}% complete)",
            {"userId": user_id, "moduleId": module_id},
        )
        return ModuleProgress.from_row(row)

    def record_quiz_attempt(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        block_id: str,
        score: float,
        passed: bool,
        total_required_blocks: int,
        actor_id: str,
        actor_name: str,
        needs_review: bool = False,
        answers: list[Any] | None = None,
    ) -> ModuleProgress:
        """
        Record one quiz attempt.

        Every attempt counts toward ``total_attempts``; only a passing attempt
        completes the quiz block. A failing attempt never un-completes a block
        that an earlier attempt already passed.
        """
        self._check_blocks(block_id, total_required_blocks)
        if score is None or not 0 <= score <= 100:
            raise OutOfRangeError(f"score must be between 0 and 100, got {score}", field="score")

        row = self._ensure_row(user_id, course_id, module_id)
        before = row.to_snapshot()
        now = _now_iso()

        blocks = dict(row.completed_blocks or {})
        entry = dict(blocks.get(block_id) or {"blockId": block_id, "completed": False, "attempts": 0})
        was_completed = bool(entry.get("completed"))
        entry.update(
            {
                "blockId": block_id,
                "completed": was_completed or passed,
                "completedAt": entry.get("completedAt") if was_completed else (now if passed else None),
                "score": score,
                "attempts": int(entry.get("attempts") or 0) + 1,
                "lastAttemptAt": now,
                "needsReview": needs_review,
            }
        )
        if answers is not None:
            entry["answers"] = list(answers)
        blocks[block_id] = entry

        row.total_attempts = (row.total_attempts or 0) + 1
        row.last_score = score
        row.last_attempt_passed = passed
        row.best_score = score if row.best_score is None else max(row.best_score, score)
        row.awaiting_review = needs_review
        self._apply_completion(row, blocks, total_required_blocks)
        self._flush_update(row, before)

        logger.debug(
            f"Attempt #{row.total_attempts} on {module_id} by {user_id}: {score:g}% "
            f"(passed={passed}, review={needs_review})"
        )
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.ASSESSMENT_SUBMIT,
            block_id,
            f"Quiz attempt: {score:g}% ({'PASSED' if passed else 'FAILED'}) - Attempt #{row.total_attempts}",
            {"userId": user_id, "moduleId": module_id, "needsReview": needs_review},
        )
        return ModuleProgress.from_row(row)

    def resolve_review(self, user_id: str, module_id: str, actor_id: str, actor_name: str) -> ModuleProgress:
        """Clear the awaiting-review flag once an instructor has graded the submission."""
        row = self._get_row(user_id, module_id)
        if not row.awaiting_review:
            return ModuleProgress.from_row(row)

        before = row.to_snapshot()
        row.awaiting_review = False
        self._flush_update(row, before)
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.MODULE_UPDATE,
            module_id,
            f"Review resolved for user {user_id}",
        )
        return ModuleProgress.from_row(row)

    def reset(self, user_id: str, module_id: str, actor_id: str, actor_name: str) -> ModuleProgress | None:
        """
        Zero blocks, progress, attempts and completion for a remediation retake.

        Grade history is untouched. Returns None when there is nothing to reset.
        """
        row = self.session.get(ModuleProgressRow, progress_id(user_id, module_id))
        if row is None:
            logger.warning(f"No progress to reset for {user_id} on {module_id}")
            return None

        before = row.to_snapshot()
        row.completed_blocks = {}
        row.overall_progress = 0
        row.is_complete = False
        row.completed_at = None
        row.total_attempts = 0
        row.awaiting_review = False
        row.best_score = None
        row.last_score = None
        row.last_attempt_passed = None
        self._flush_update(row, before)

        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.MODULE_UPDATE,
            module_id,
            f"Reset module progress for user {user_id} (remediation)",
        )
        return ModuleProgress.from_row(row)

    def remove(self, user_id: str, module_id: str, actor_id: str, actor_name: str) -> None:
        """Delete a progress record (admin action)."""
        row = self._get_row(user_id, module_id)
        before = row.to_snapshot()
        self.session.delete(row)
        self.session.flush()
        self.publish(ChangeEvent(PROGRESS, before["id"], before, None))
        self.audit.record(
            actor_id,
            actor_name,
            AuditAction.PROGRESS_DELETE,
            before["id"],
            f"Deleted progress for user {user_id} on module {module_id}",
        )

    # ========================================
    # Reads
    # ========================================

    def get(self, user_id: str, module_id: str) -> ModuleProgress | None:
        row = self.session.get(ModuleProgressRow, progress_id(user_id, module_id))
        return ModuleProgress.from_row(row) if row else None

    def get_course_progress(self, user_id: str, course_id: str) -> list[ModuleProgress]:
        stmt = (
            select(ModuleProgressRow)
            .where(ModuleProgressRow.user_id == user_id, ModuleProgressRow.course_id == course_id)
            .order_by(ModuleProgressRow.module_id)
        )
        return [ModuleProgress.from_row(row) for row in self.session.scalars(stmt)]

    def get_user_progress(self, user_id: str) -> list[ModuleProgress]:
        stmt = select(ModuleProgressRow).where(ModuleProgressRow.user_id == user_id)
        return [ModuleProgress.from_row(row) for row in self.session.scalars(stmt)]

    def attempt_count(self, user_id: str, module_id: str) -> int:
        record = self.get(user_id, module_id)
        return record.total_attempts if record else 0

    @staticmethod
    def calculate_course_completion(records: Sequence[ModuleProgress], total_modules: int) -> int:
        return calculate_course_completion(records, total_modules)

    # ========================================
    # Helpers
    # ========================================

    def _ensure_row(self, user_id: str, course_id: str, module_id: str) -> ModuleProgressRow:
        if not user_id or not course_id or not module_id:
            raise InvalidArgumentError("user_id, course_id and module_id are required")

        row = self.session.get(ModuleProgressRow, progress_id(user_id, module_id))
        if row is not None:
            return row

        row = ModuleProgressRow(
            id=progress_id(user_id, module_id),
            user_id=user_id,
            course_id=course_id,
            module_id=module_id,
            completed_blocks={},
            overall_progress=0,
            is_complete=False,
            awaiting_review=False,
            total_attempts=0,
        )
        self.session.add(row)
        self.session.flush()
        self.publish(ChangeEvent(PROGRESS, row.id, None, row.to_snapshot()))
        logger.debug(f"Initialized progress {row.id}")
        return row

    def _get_row(self, user_id: str, module_id: str) -> ModuleProgressRow:
        row = self.session.get(ModuleProgressRow, progress_id(user_id, module_id))
        if row is None:
            raise NotFoundError(
                f"No progress for user {user_id} on module {module_id}",
                user_id=user_id,
                module_id=module_id,
            )
        return row

    @staticmethod
    def _check_blocks(block_id: str, total_required_blocks: int) -> None:
        if not block_id:
            raise InvalidArgumentError("block_id is required")
        if total_required_blocks is None or total_required_blocks < 1:
            raise InvalidArgumentError(
                f"total_required_blocks must be at least 1, got {total_required_blocks}",
                field="total_required_blocks",
            )

    @staticmethod
    def _apply_completion(row: ModuleProgressRow, blocks: dict[str, Any], total_required_blocks: int) -> None:
        completed = sum(1 for block in blocks.values() if block.get("completed"))
        computed = min(100, percent(completed, total_required_blocks))

        row.completed_blocks = blocks
        row.overall_progress = max(row.overall_progress or 0, computed)
        if row.overall_progress >= 100 and not row.is_complete:
            row.is_complete = True
        if row.is_complete and row.completed_at is None:
            row.completed_at = datetime.now(UTC)

    def _flush_update(self, row: ModuleProgressRow, before: dict[str, Any]) -> None:
        self.session.flush()
        self.publish(ChangeEvent(PROGRESS, row.id, before, row.to_snapshot()))
