"""
Fill-in-the-blank grader.

Case and surrounding whitespace never affect correctness.
"""

from typing import Any

from . import QuestionType, register
from .base import QuestionGradeResult, build_result


def normalize(text: str) -> str:
    return text.strip().lower()


@register(QuestionType.FILL_BLANK)
class FillBlankGrader:
    """Grader for fill-blank questions."""

    def grade(self, question: Any, answer: Any) -> QuestionGradeResult:
        if not isinstance(answer, str):
            return build_result(question, False)
        return build_result(question, normalize(answer) == normalize(question.correct_answer))

    def is_answer_complete(self, question: Any, answer: Any) -> bool:
        return isinstance(answer, str) and bool(answer.strip())
