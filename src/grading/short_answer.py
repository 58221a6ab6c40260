"""
Short-answer grader.

Short answers are never auto-marked correct and always go to an instructor.
Full provisional points are granted when the answer looks substantive (at
least SUBSTANTIVE_LENGTH characters after trimming); the final credit comes
from the instructor through the grade ledger.
"""

from typing import Any

from . import QuestionType, register
from .base import QuestionGradeResult, build_result

SUBSTANTIVE_LENGTH = 20


def is_substantive(answer: Any) -> bool:
    return isinstance(answer, str) and len(answer.strip()) >= SUBSTANTIVE_LENGTH


@register(QuestionType.SHORT_ANSWER)
class ShortAnswerGrader:
    """Grader for short-answer / essay questions."""

    def grade(self, question: Any, answer: Any) -> QuestionGradeResult:
        return build_result(question, False, credited=is_substantive(answer), needs_review=True)

    def is_answer_complete(self, question: Any, answer: Any) -> bool:
        return is_substantive(answer)
