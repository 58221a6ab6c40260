"""
Matching grader.

The answer is an ordered list parallel to the question's pairs. Credit is all
or nothing: every ``right`` value must match at its index. An empty pair list
is never correct.
"""

from typing import Any

from . import QuestionType, register
from .base import QuestionGradeResult, build_result


def _as_answer_list(answer: Any) -> list[str] | None:
    if not isinstance(answer, (list, tuple)):
        return None
    if not all(isinstance(item, str) for item in answer):
        return None
    return list(answer)


@register(QuestionType.MATCHING)
class MatchingGrader:
    """Grader for matching questions."""

    def grade(self, question: Any, answer: Any) -> QuestionGradeResult:
        pairs = question.matching_pairs
        answers = _as_answer_list(answer)
        correct = (
            bool(pairs)
            and answers is not None
            and len(answers) == len(pairs)
            and all(pair.right == given for pair, given in zip(pairs, answers))
        )
        return build_result(question, correct)

    def is_answer_complete(self, question: Any, answer: Any) -> bool:
        answers = _as_answer_list(answer)
        return (
            answers is not None
            and len(answers) == len(question.matching_pairs)
            and all(answers)
        )
