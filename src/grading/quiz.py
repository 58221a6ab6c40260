"""
Quiz aggregation.

Grades every (question, answer) pair in order and reduces them to a 0-100
score. The answer list is positional: missing trailing answers are absent
answers and extra answers are ignored.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from src.core.errors import InvalidArgumentError
from src.core.scoring import percent

from . import get_grader, grade_question
from .base import QuestionGradeResult
from .questions import QuizQuestion, parse_questions

DEFAULT_PASSING_SCORE = 80


@dataclass(frozen=True)
class QuizResult:
    """Aggregate result of one quiz attempt."""
    score: int
    passed: bool
    needs_review: bool
    total_points: float
    earned_points: float
    results: tuple[QuestionGradeResult, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "passed": self.passed,
            "needsReview": self.needs_review,
            "totalPoints": self.total_points,
            "earnedPoints": self.earned_points,
            "results": [r.to_dict() for r in self.results],
        }


def _check_passing_score(passing_score: float) -> None:
    if not 0 <= passing_score <= 100:
        raise InvalidArgumentError(
            f"Passing score must be between 0 and 100, got {passing_score}",
            passing_score=passing_score,
        )


def grade_quiz(
    questions: Sequence[QuizQuestion | dict],
    answers: Sequence[Any],
    passing_score: float,
) -> QuizResult:
    """Grade a full quiz attempt."""
    _check_passing_score(passing_score)
    parsed = parse_questions(questions)

    results = tuple(
        grade_question(question, answers[idx] if idx < len(answers) else None)
        for idx, question in enumerate(parsed)
    )
    total = sum(r.max_points for r in results)
    earned = sum(r.earned_points for r in results)
    score = percent(earned, total)

    return QuizResult(
        score=score,
        passed=score >= passing_score,
        needs_review=any(r.needs_manual_review for r in results),
        total_points=total,
        earned_points=earned,
        results=results,
    )


def grade_quiz_block(
    quiz_data: dict,
    answers: Sequence[Any],
    fallback_passing_score: float = DEFAULT_PASSING_SCORE,
) -> QuizResult:
    """Grade a quiz block payload (``{"questions": [...], "passingScore": n}``)."""
    passing_score = quiz_data.get("passingScore")
    if passing_score is None:
        passing_score = fallback_passing_score
    return grade_quiz(quiz_data.get("questions", []), answers, passing_score)


def is_quiz_complete(questions: Sequence[QuizQuestion | dict], answers: Sequence[Any]) -> bool:
    """Whether every question has an answer sufficient for submission."""
    for idx, question in enumerate(parse_questions(questions)):
        answer = answers[idx] if idx < len(answers) else None
        grader = get_grader(question.type)
        if grader is None or not grader.is_answer_complete(question, answer):
            return False
    return True
