"""
Course Grade Module - Weighted course grade with critical-module gating.
"""

from src.course_grade.calculator import (
    DEFAULT_MINIMUM_OVERALL_SCORE,
    CourseGradeCalculation,
    ModuleScore,
    calculate_course_grade,
)
from src.course_grade.service import CourseGradeService

__all__ = [
    "DEFAULT_MINIMUM_OVERALL_SCORE",
    "CourseGradeCalculation",
    "CourseGradeService",
    "ModuleScore",
    "calculate_course_grade",
]
