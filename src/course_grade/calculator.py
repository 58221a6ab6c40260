"""
Weighted course grade calculation.

Pure function of the course's module list and the current grade per module.
Module weights are percentage contributions: the overall score is the plain
sum of ``score * weight / 100`` over graded modules, not an average normalised
by the weight graded so far. A course passes only when that score reaches the
minimum AND every critical module's current grade passed.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from src.core.scoring import percent, round_half_up

DEFAULT_MINIMUM_OVERALL_SCORE = 70.0


class GradedModule(Protocol):
    id: str
    weight: float
    is_critical: bool
    passing_score: float
    title: str


class CurrentGrade(Protocol):
    score: float
    passed: bool


@dataclass(frozen=True)
class ModuleScore:
    """One module's line in the breakdown; score fields are None while ungraded."""

    module_id: str
    module_title: str
    weight: float
    is_critical: bool
    passing_score: float
    score: float | None = None
    weighted_score: float | None = None
    passed: bool | None = None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "score": self.score,
            "weight": self.weight,
            "weightedScore": self.weighted_score,
            "isCritical": self.is_critical,
            "passed": self.passed,
            "passingScore": self.passing_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModuleScore:
        return cls(
            module_id=data["moduleId"],
            module_title=data.get("moduleTitle", ""),
            weight=data.get("weight", 0),
            is_critical=data.get("isCritical", False),
            passing_score=data.get("passingScore", 0),
            score=data.get("score"),
            weighted_score=data.get("weightedScore"),
            passed=data.get("passed"),
        )


@dataclass(frozen=True)
class CourseGradeCalculation:
    course_id: str
    user_id: str
    overall_score: float
    overall_passed: bool
    total_critical_modules: int
    critical_modules_passed: int
    all_critical_modules_passed: bool
    total_modules: int
    graded_modules: int
    completion_percent: int
    is_complete: bool
    module_breakdown: tuple[ModuleScore, ...] = field(default_factory=tuple)
    calculated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "courseId": self.course_id,
            "userId": self.user_id,
            "overallScore": self.overall_score,
            "overallPassed": self.overall_passed,
            "totalCriticalModules": self.total_critical_modules,
            "criticalModulesPassed": self.critical_modules_passed,
            "allCriticalModulesPassed": self.all_critical_modules_passed,
            "moduleBreakdown": [m.to_dict() for m in self.module_breakdown],
            "totalModules": self.total_modules,
            "gradedModules": self.graded_modules,
            "completionPercent": self.completion_percent,
            "isComplete": self.is_complete,
            "calculatedAt": self.calculated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CourseGradeCalculation:
        return cls(
            course_id=data["courseId"],
            user_id=data["userId"],
            overall_score=data["overallScore"],
            overall_passed=data["overallPassed"],
            total_critical_modules=data["totalCriticalModules"],
            critical_modules_passed=data["criticalModulesPassed"],
            all_critical_modules_passed=data["allCriticalModulesPassed"],
            total_modules=data["totalModules"],
            graded_modules=data["gradedModules"],
            completion_percent=data["completionPercent"],
            is_complete=data["isComplete"],
            module_breakdown=tuple(ModuleScore.from_dict(m) for m in data.get("moduleBreakdown", [])),
            calculated_at=datetime.fromisoformat(data["calculatedAt"]),
        )


def calculate_course_grade(
    user_id: str,
    course_id: str,
    modules: Sequence[GradedModule],
    current_grades: Mapping[str, CurrentGrade],
    minimum_overall_score: float = DEFAULT_MINIMUM_OVERALL_SCORE,
) -> CourseGradeCalculation:
    """
    Compute the weighted course grade.

    Args:
        modules: Every module of the course (weight, criticality, passing score)
        current_grades: Current grade per module id; a missing key means ungraded
        minimum_overall_score: Weighted score needed to pass

    The weighted sum uses ``math.fsum``, so the result does not depend on the
    order of ``modules``. The reported score is rounded half up to one decimal;
    the pass decision uses the unrounded sum.
    """
    breakdown: list[ModuleScore] = []
    weighted_scores: list[float] = []
    total_critical = 0
    critical_passed = 0

    for module in modules:
        weight = module.weight or 0
        is_critical = bool(module.is_critical)
        if is_critical:
            total_critical += 1

        grade = current_grades.get(module.id)
        if grade is None:
            breakdown.append(
                ModuleScore(
                    module_id=module.id,
                    module_title=getattr(module, "title", "") or "",
                    weight=weight,
                    is_critical=is_critical,
                    passing_score=module.passing_score,
                )
            )
            continue

        weighted = grade.score * weight / 100
        weighted_scores.append(weighted)
        if is_critical and grade.passed:
            critical_passed += 1

        breakdown.append(
            ModuleScore(
                module_id=module.id,
                module_title=getattr(module, "title", "") or "",
                weight=weight,
                is_critical=is_critical,
                passing_score=module.passing_score,
                score=grade.score,
                weighted_score=weighted,
                passed=grade.passed,
            )
        )

    total_weighted = math.fsum(weighted_scores)
    all_critical_passed = critical_passed == total_critical
    graded = len(weighted_scores)
    total_modules = len(breakdown)

    return CourseGradeCalculation(
        course_id=course_id,
        user_id=user_id,
        overall_score=round_half_up(total_weighted, 1),
        overall_passed=total_weighted >= minimum_overall_score and all_critical_passed,
        total_critical_modules=total_critical,
        critical_modules_passed=critical_passed,
        all_critical_modules_passed=all_critical_passed,
        total_modules=total_modules,
        graded_modules=graded,
        completion_percent=percent(graded, total_modules),
        is_complete=total_modules > 0 and graded == total_modules,
        module_breakdown=tuple(breakdown),
    )
