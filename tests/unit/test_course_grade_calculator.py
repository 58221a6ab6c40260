"""
Unit tests for the weighted course grade calculation and score arithmetic.
"""

import itertools
from dataclasses import dataclass

import pytest

from src.catalog import ModuleDefinition
from src.core.scoring import CompetencyLevel, calculate_competency, percent, round_half_up
from src.course_grade import CourseGradeCalculation, calculate_course_grade


@dataclass(frozen=True)
class Grade:
    score: float
    passed: bool


def module(module_id, weight, critical=False, passing_score=80):
    return ModuleDefinition(id=module_id, course_id="CARE-101", weight=weight, is_critical=critical,
                            passing_score=passing_score)


class TestScoring:
    """Test rounding and competency bands."""

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (74.45, 74), (-2.5, -3)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_round_half_up_one_decimal(self):
        assert round_half_up(74.25, 1) == 74.3

    def test_percent_of_zero_whole(self):
        assert percent(5, 0) == 0

    @pytest.mark.parametrize(
        "score,level",
        [
            (100, CompetencyLevel.MASTERY),
            (95, CompetencyLevel.MASTERY),
            (94.9, CompetencyLevel.COMPETENT),
            (80, CompetencyLevel.COMPETENT),
            (60, CompetencyLevel.DEVELOPING),
            (59, CompetencyLevel.NOT_COMPETENT),
        ],
    )
    def test_competency_bands(self, score, level):
        assert calculate_competency(score) is level


class TestCalculateCourseGrade:
    """Test calculate_course_grade()."""

    def test_failed_critical_module_blocks_pass(self):
        modules = [module("A", 60, critical=True), module("B", 40, critical=True)]
        grades = {"A": Grade(90, True), "B": Grade(50, False)}

        result = calculate_course_grade("u1", "CARE-101", modules, grades)

        assert result.overall_score == 74
        assert result.all_critical_modules_passed is False
        assert result.critical_modules_passed == 1
        assert result.total_critical_modules == 2
        assert result.overall_passed is False

    def test_passes_with_all_critical_passed(self):
        modules = [module("A", 60, critical=True), module("B", 40)]
        grades = {"A": Grade(90, True), "B": Grade(60, False)}

        result = calculate_course_grade("u1", "CARE-101", modules, grades)

        assert result.overall_score == 78
        assert result.overall_passed is True

    def test_ungraded_modules_contribute_nothing(self):
        modules = [module("A", 20), module("B", 80)]
        result = calculate_course_grade("u1", "CARE-101", modules, {"A": Grade(100, True)})

        assert result.overall_score == 20
        assert result.graded_modules == 1
        assert result.total_modules == 2
        assert result.completion_percent == 50
        assert result.is_complete is False
        assert result.module_breakdown[1].score is None
        assert result.module_breakdown[1].passed is None

    def test_no_critical_modules_is_vacuously_passed(self):
        result = calculate_course_grade("u1", "CARE-101", [module("A", 100)], {"A": Grade(70, False)})

        assert result.all_critical_modules_passed is True
        assert result.overall_passed is True

    def test_ungraded_critical_module_blocks_pass(self):
        modules = [module("A", 100), module("B", 0, critical=True)]
        result = calculate_course_grade("u1", "CARE-101", modules, {"A": Grade(100, True)})

        assert result.overall_score == 100
        assert result.overall_passed is False

    def test_score_rounded_to_one_decimal(self):
        modules = [module("A", 33.3), module("B", 66.7)]
        grades = {"A": Grade(81, True), "B": Grade(77, False)}

        result = calculate_course_grade("u1", "CARE-101", modules, grades)

        assert result.overall_score == 78.3

    def test_pass_uses_minimum_overall_score(self):
        result = calculate_course_grade(
            "u1", "CARE-101", [module("A", 100)], {"A": Grade(75, False)}, minimum_overall_score=80
        )
        assert result.overall_passed is False

    def test_empty_module_list(self):
        result = calculate_course_grade("u1", "CARE-101", [], {})

        assert result.overall_score == 0
        assert result.completion_percent == 0
        assert result.is_complete is False

    def test_order_invariant(self):
        modules = [module("A", 12.5, critical=True), module("B", 37.5), module("C", 20), module("D", 30)]
        grades = {"A": Grade(91.3, True), "B": Grade(66.1, False), "C": Grade(88.8, True), "D": Grade(72.2, False)}

        results = {
            (r.overall_score, r.overall_passed)
            for r in (
                calculate_course_grade("u1", "CARE-101", list(order), grades)
                for order in itertools.permutations(modules)
            )
        }
        assert len(results) == 1

    @pytest.mark.parametrize("b_score,b_passed", [(85, True), (40, False), (100, True), (0, False)])
    def test_overall_pass_implies_critical_pass(self, b_score, b_passed):
        modules = [module("A", 50, critical=True), module("B", 50, critical=True)]
        grades = {"A": Grade(95, True), "B": Grade(b_score, b_passed)}

        result = calculate_course_grade("u1", "CARE-101", modules, grades)

        if result.overall_passed:
            assert result.all_critical_modules_passed

    def test_dict_round_trip_preserves_breakdown(self):
        modules = [module("A", 60, critical=True), module("B", 40)]
        result = calculate_course_grade("u1", "CARE-101", modules, {"A": Grade(90, True)})

        restored = CourseGradeCalculation.from_dict(result.to_dict())

        assert restored == result
