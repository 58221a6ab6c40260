"""
Trigger handlers for change events.

Handlers act on the delta between the before and after snapshots (a
threshold crossed, a status changed), never on a value merely being present,
so that re-processing an event cannot repeat its side effects. Each handler
reads the latest persisted state of the records it touches.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from src.assessment.context import AssessmentContext
from src.audit import AuditAction
from src.catalog.course_catalog import DEFAULT_PASSING_SCORE
from src.core.errors import InvalidArgumentError, OutOfRangeError
from src.events.bus import EventBus
from src.events.change import (
    ENROLLMENTS,
    GRADES,
    PROGRESS,
    REMEDIATION_REQUESTS,
    ChangeEvent,
    ChangeKind,
)
from src.ledger import assert_immutable_fields

SYSTEM_GRADE_NOTE = "Recorded automatically on module completion (best quiz score)"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_grade_snapshot(grade: dict[str, Any]) -> None:
    """Reject malformed grade payloads before acting on them."""
    for key in ("userId", "moduleId", "gradedBy"):
        if not isinstance(grade.get(key), str) or not grade[key]:
            raise InvalidArgumentError(f"Invalid grade data: {key} missing", grade_id=grade.get("id"))
    if not isinstance(grade.get("passed"), bool):
        raise InvalidArgumentError("Invalid grade data: passed must be a boolean", grade_id=grade.get("id"))
    for key in ("score", "passingScore"):
        value = grade.get(key)
        if not _is_number(value) or not 0 <= value <= 100:
            raise InvalidArgumentError(f"Invalid grade data: {key}={value!r}", grade_id=grade.get("id"))


# ========================================
# Grades
# ========================================

def on_grade_created(ctx: AssessmentContext, event: ChangeEvent) -> None:
    """Validate the new grade and open remediation after repeated failure."""
    grade = event.after
    validate_grade_snapshot(grade)
    logger.info(f"Grade created: {event.document_id} ({grade['score']}% for {grade['userId']})")

    if grade["passed"]:
        return

    attempts = ctx.progress.attempt_count(grade["userId"], grade["moduleId"])
    if attempts < ctx.settings.remediation_attempt_threshold:
        return

    course_id = grade.get("courseId")
    if not course_id:
        module = ctx.catalog.find_module(grade["moduleId"])
        course_id = module.course_id if module else None

    system_id, system_name = ctx.system_actor
    ctx.remediation.request_for_failure(
        grade["userId"],
        grade["moduleId"],
        course_id,
        attempts,
        source_key=event.event_id,
        actor_id=system_id,
        actor_name=system_name,
        reason=f"Failed module after {attempts} attempts (grade {grade['score']}%)",
    )


def on_grade_updated(ctx: AssessmentContext, event: ChangeEvent) -> None:
    """Enforce grade identity and audit any change to the outcome."""
    before, after = event.before, event.after
    assert_immutable_fields(before, after)

    if event.changed("supersededBy") and after.get("supersededBy"):
        logger.info(f"Grade {event.document_id} superseded by {after['supersededBy']}")

    changes = []
    if event.changed("score"):
        changes.append(f"score: {before.get('score')} → {after.get('score')}")
    if event.changed("passed"):
        changes.append(f"passed: {before.get('passed')} → {after.get('passed')}")
    if not changes:
        return

    system_id, system_name = ctx.system_actor
    ctx.audit.record(
        after.get("gradedBy") or system_id,
        system_name,
        AuditAction.GRADE_UPDATE,
        event.document_id,
        f"Grade modified: {', '.join(changes)}",
        {
            "before": {"score": before.get("score"), "passed": before.get("passed")},
            "after": {"score": after.get("score"), "passed": after.get("passed")},
        },
    )


# ========================================
# Progress
# ========================================

def on_progress_written(ctx: AssessmentContext, event: ChangeEvent) -> None:
    """
    Cascade module progress into grades, remediation and the enrollment.

    - created: audit the module start
    - completion crossed: audit it and record a system grade from the best
      quiz score (unless the submission awaits instructor review)
    - attempt count rose with a failing attempt at/over the threshold:
      request remediation
    - always: resync the enrollment's course progress
    """
    if event.kind is ChangeKind.DELETED:
        logger.warning(f"Progress record deleted: {event.document_id}")
        return

    after = event.after
    overall = after.get("overallProgress")
    if not _is_number(overall) or not 0 <= overall <= 100:
        raise OutOfRangeError(f"Progress must be between 0 and 100, got {overall!r}", progress_id=event.document_id)

    user_id, course_id, module_id = after["userId"], after["courseId"], after["moduleId"]
    system_id, system_name = ctx.system_actor

    if event.kind is ChangeKind.CREATED:
        ctx.audit.record(
            user_id,
            "User",
            AuditAction.PROGRESS_CREATE,
            event.document_id,
            f"Started module {module_id}",
            {"moduleId": module_id, "courseId": course_id},
        )
        return

    before = event.before
    if not before.get("isComplete") and after.get("isComplete"):
        logger.info(f"Module completed: {module_id} by {user_id}")
        ctx.audit.record(
            user_id,
            "User",
            AuditAction.MODULE_COMPLETE,
            event.document_id,
            f"Completed module {module_id}",
            {"moduleId": module_id, "courseId": course_id},
        )
        if after.get("totalAttempts", 0) > 0 and not after.get("awaitingReview") and after.get("bestScore") is not None:
            module = ctx.catalog.find_module(module_id)
            ctx.ledger.enter_grade(
                user_id,
                module_id,
                after["bestScore"],
                module.passing_score if module else DEFAULT_PASSING_SCORE,
                system_id,
                system_name,
                notes=SYSTEM_GRADE_NOTE,
                course_id=course_id,
            )

    attempts = after.get("totalAttempts", 0)
    new_attempt = attempts > before.get("totalAttempts", 0)
    if new_attempt and after.get("lastAttemptPassed") is False:
        if attempts >= ctx.settings.remediation_attempt_threshold:
            ctx.remediation.request_for_failure(
                user_id,
                module_id,
                course_id,
                attempts,
                source_key=event.event_id,
                actor_id=system_id,
                actor_name=system_name,
            )

    ctx.enrollments.sync_progress(
        user_id,
        course_id,
        system_id,
        system_name,
        resubmitted=new_attempt and bool(after.get("lastAttemptPassed")),
    )


# ========================================
# Enrollments
# ========================================

def on_enrollment_updated(ctx: AssessmentContext, event: ChangeEvent) -> None:
    """Snapshot the course grade when an enrollment completes."""
    if not event.changed("status"):
        return

    after = event.after
    status = after.get("status")
    if status == "completed":
        if not ctx.catalog.course_exists(after["courseId"]):
            logger.warning(f"Enrollment {event.document_id} completed but course {after['courseId']} has no modules")
            return
        system_id, system_name = ctx.system_actor
        ctx.course_grades.calculate_and_save(after["userId"], after["courseId"], system_id, system_name)
    elif status == "failed":
        logger.warning(f"Enrollment {event.document_id} marked as failed for course {after['courseId']}")


# ========================================
# Remediation
# ========================================

def on_remediation_updated(ctx: AssessmentContext, event: ChangeEvent) -> None:
    """Apply an approval (reset and reopen) or log a denial."""
    if not event.changed("status"):
        return

    request = event.after
    actor_id = request.get("resolvedBy") or ctx.settings.system_actor_id
    actor_name = request.get("resolvedByName") or ctx.settings.system_actor_name
    user_id, module_id, course_id = request["userId"], request["moduleId"], request.get("courseId")

    if request["status"] == "approved":
        ctx.progress.reset(user_id, module_id, actor_id, actor_name)
        if course_id and ctx.enrollments.get(user_id, course_id) is not None:
            ctx.enrollments.reopen_for_remediation(
                user_id,
                course_id,
                actor_id,
                actor_name,
                reason=f"Remediation approved for module {module_id}",
            )
        ctx.audit.record(
            actor_id,
            actor_name,
            AuditAction.REMEDIATION_APPROVED,
            event.document_id,
            f"Remediation approved for user {user_id} on module {module_id}; progress reset",
            {"userId": user_id, "moduleId": module_id, "notes": request.get("resolutionNotes")},
        )
    elif request["status"] == "denied":
        ctx.audit.record(
            actor_id,
            actor_name,
            AuditAction.REMEDIATION_DENIED,
            event.document_id,
            f"Remediation denied for user {user_id} on module {module_id}"
            + (f": {request['resolutionNotes']}" if request.get("resolutionNotes") else ""),
            {"userId": user_id, "moduleId": module_id, "notes": request.get("resolutionNotes")},
        )


def register_handlers(bus: EventBus) -> EventBus:
    """Subscribe every trigger handler."""
    bus.subscribe(GRADES, ChangeKind.CREATED, on_grade_created)
    bus.subscribe(GRADES, ChangeKind.UPDATED, on_grade_updated)
    bus.subscribe(PROGRESS, (ChangeKind.CREATED, ChangeKind.UPDATED, ChangeKind.DELETED), on_progress_written)
    bus.subscribe(ENROLLMENTS, ChangeKind.UPDATED, on_enrollment_updated)
    bus.subscribe(REMEDIATION_REQUESTS, ChangeKind.UPDATED, on_remediation_updated)
    return bus
