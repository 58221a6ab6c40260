"""
Base protocol and types for question graders.
"""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class QuestionGradeResult:
    """Result of grading one answer. Produced once per (attempt, question)."""
    question_id: str
    question_type: str
    is_correct: bool
    needs_manual_review: bool
    earned_points: float
    max_points: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionId": self.question_id,
            "type": self.question_type,
            "isCorrect": self.is_correct,
            "needsManualReview": self.needs_manual_review,
            "earnedPoints": self.earned_points,
            "maxPoints": self.max_points,
        }


def build_result(question: Any, correct: bool, *, credited: bool | None = None,
                 needs_review: bool = False) -> QuestionGradeResult:
    """Binary-credit result: full points when ``credited`` (defaults to ``correct``), else zero."""
    credited = correct if credited is None else credited
    return QuestionGradeResult(
        question_id=question.id,
        question_type=question.type,
        is_correct=correct,
        needs_manual_review=needs_review,
        earned_points=question.points if credited else 0,
        max_points=question.points,
    )


class QuestionGrader(Protocol):
    """Protocol for question type graders."""

    def grade(self, question: Any, answer: Any) -> QuestionGradeResult:
        """Score the answer. Wrong-shaped answers are treated as absent."""
        ...

    def is_answer_complete(self, question: Any, answer: Any) -> bool:
        """Check if the answer is sufficient for submission."""
        ...
