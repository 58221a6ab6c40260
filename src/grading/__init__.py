"""
Question graders for module quizzes.

Each question type (multiple-choice, fill-blank, matching, ...) has a grader
registered here with:
- grade(): Score one answer, returning a QuestionGradeResult
- is_answer_complete(): Whether the answer is sufficient to submit
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

from src.core.errors import InvalidArgumentError

if TYPE_CHECKING:
    from .base import QuestionGrader, QuestionGradeResult
    from .questions import QuizQuestion


class QuestionType(str, Enum):
    """Supported quiz question types."""
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    FILL_BLANK = "fill-blank"
    MATCHING = "matching"
    SHORT_ANSWER = "short-answer"


# Grader registry - populated by @register decorator
GRADERS: dict[QuestionType, "QuestionGrader"] = {}


def register(question_type: QuestionType):
    """Decorator to register a question grader; stacked decorators share one instance."""
    def decorator(cls):
        existing = next((g for g in GRADERS.values() if type(g) is cls), None)
        GRADERS[question_type] = existing or cls()
        return cls
    return decorator


def get_grader(question_type: str | QuestionType) -> "QuestionGrader | None":
    """Get the grader for a question type."""
    if isinstance(question_type, str):
        try:
            question_type = QuestionType(question_type.lower())
        except ValueError:
            return None
    return GRADERS.get(question_type)


def grade_question(question: "QuizQuestion | dict", answer: Any = None) -> "QuestionGradeResult":
    """
    Grade a single question against the learner's raw answer.

    Dict payloads are parsed into their tagged variant first. A missing or
    wrong-shaped answer earns zero credit; it is never an error.
    """
    question = parse_question(question)
    grader = get_grader(question.type)
    if grader is None:
        raise InvalidArgumentError(f"No grader registered for question type '{question.type}'")
    return grader.grade(question, answer)


# Import graders to trigger registration
from . import choice
from . import fill_blank
from . import matching
from . import short_answer

from .base import QuestionGradeResult  # noqa: E402
from .questions import QuizQuestion, parse_question, parse_questions  # noqa: E402
from .quiz import QuizResult, grade_quiz, grade_quiz_block, is_quiz_complete  # noqa: E402

__all__ = [
    "QuestionType",
    "GRADERS",
    "get_grader",
    "register",
    "grade_question",
    "QuestionGradeResult",
    "QuizQuestion",
    "parse_question",
    "parse_questions",
    "QuizResult",
    "grade_quiz",
    "grade_quiz_block",
    "is_quiz_complete",
]
