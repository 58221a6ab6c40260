"""
Integration tests for the course grade callable operation.
"""

import pytest

from src.audit import AuditAction, query_audit_log
from src.core.errors import InvalidArgumentError, NotFoundError, UnauthenticatedError
from src.core.identity import Caller

pytestmark = pytest.mark.integration

USER, COURSE = "nurse-1", "CARE-101"


@pytest.fixture
def graded(ctx, course_modules):
    for module in course_modules:
        ctx.catalog.add_module(module)
    ctx.ledger.enter_grade(USER, "infection-control", 90, 80, "inst-1", "Dr. Lee", course_id=COURSE)
    return ctx


class TestCalculateCourseGrade:
    """Test CourseGradeService.calculate_course_grade()."""

    def test_uses_current_grades(self, graded, instructor):
        original = graded.ledger.get_current_grade(USER, "infection-control")
        graded.ledger.correct_grade(original.id, 70, 80, "rescored", "inst-1", "Dr. Lee")

        result = graded.course_grades.calculate_course_grade(instructor, USER, COURSE)

        assert result.overall_score == 42
        assert result.graded_modules == 1
        assert result.completion_percent == 50

    def test_snapshot_saved_and_audited(self, graded, session, instructor):
        result = graded.course_grades.calculate_course_grade(instructor, USER, COURSE)

        assert graded.course_grades.get_snapshot(USER, COURSE) == result
        assert [r.user_id for r in graded.course_grades.get_course_grades_for_course(COURSE)] == [USER]
        assert graded.course_grades.get_user_course_grades(USER)[0].course_id == COURSE
        entry = query_audit_log(session, action_type=AuditAction.COURSE_GRADE_CALCULATE)[0]
        assert entry.actor_id == instructor.uid
        assert entry.target_id == f"{USER}_{COURSE}"

    def test_recalculation_overwrites_snapshot(self, graded, instructor):
        graded.course_grades.calculate_course_grade(instructor, USER, COURSE)
        graded.ledger.enter_grade(USER, "patient-safety", 100, 80, "inst-1", "Dr. Lee", course_id=COURSE)

        graded.course_grades.calculate_course_grade(instructor, USER, COURSE)

        assert graded.course_grades.get_snapshot(USER, COURSE).overall_score == 94

    def test_unauthenticated(self, graded):
        with pytest.raises(UnauthenticatedError):
            graded.course_grades.calculate_course_grade(None, USER, COURSE)

    def test_blank_uid_is_unauthenticated(self, graded):
        with pytest.raises(UnauthenticatedError):
            graded.course_grades.calculate_course_grade(Caller(uid=""), USER, COURSE)

    def test_missing_course_id(self, graded, instructor):
        with pytest.raises(InvalidArgumentError):
            graded.course_grades.calculate_course_grade(instructor, USER, "")

    def test_course_without_modules(self, graded, instructor):
        with pytest.raises(NotFoundError):
            graded.course_grades.calculate_course_grade(instructor, USER, "EMPTY-1")

    def test_any_authenticated_caller_may_calculate(self, graded, learner):
        result = graded.course_grades.calculate_course_grade(learner, USER, COURSE)
        assert result.overall_score == 54
