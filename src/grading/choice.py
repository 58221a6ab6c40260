"""
Multiple-choice and true/false graders.

The answer is an option index; credit is binary on strict equality.
"""

from typing import Any

from . import QuestionType, register
from .base import QuestionGradeResult, build_result


def as_index(answer: Any) -> int | None:
    """Return the answer as an option index, or None when it has the wrong shape."""
    if isinstance(answer, bool) or not isinstance(answer, int):
        return None
    return answer


@register(QuestionType.TRUE_FALSE)
@register(QuestionType.MULTIPLE_CHOICE)
class ChoiceGrader:
    """Grader for single-answer choice questions."""

    def grade(self, question: Any, answer: Any) -> QuestionGradeResult:
        index = as_index(answer)
        return build_result(question, index is not None and index == question.correct_answer)

    def is_answer_complete(self, question: Any, answer: Any) -> bool:
        return as_index(answer) is not None
