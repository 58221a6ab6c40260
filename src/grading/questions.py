"""
Quiz question payloads as tagged variants.

The answer key's shape depends on ``type``: an option index for the choice
types, a string for fill-blank, ordered pairs for matching, nothing for
short-answer. Payloads arrive in the document-store's camelCase shape
(``correctAnswer``, ``matchingPairs``, ``question`` for the prompt) and are
validated into one of the variants below; a payload whose answer key does not
fit its type is rejected.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.core.errors import InvalidArgumentError


class _QuestionBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str
    prompt: str = Field(default="", validation_alias=AliasChoices("prompt", "question"))
    points: float = Field(ge=0)


class _ChoiceQuestion(_QuestionBase):
    options: list[str]
    correct_answer: StrictInt

    @model_validator(mode="after")
    def _answer_indexes_options(self):
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError(
                f"correctAnswer {self.correct_answer} is not an index into {len(self.options)} options"
            )
        return self


class MultipleChoiceQuestion(_ChoiceQuestion):
    type: Literal["multiple-choice"] = "multiple-choice"


class TrueFalseQuestion(_ChoiceQuestion):
    """Index 0 is True, 1 is False."""
    type: Literal["true-false"] = "true-false"
    options: list[str] = Field(default_factory=lambda: ["True", "False"])


class FillBlankQuestion(_QuestionBase):
    type: Literal["fill-blank"] = "fill-blank"
    correct_answer: StrictStr


class MatchingPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    left: str
    right: str


class MatchingQuestion(_QuestionBase):
    """Any ``correctAnswer`` on the payload is ignored; the pairs are the key."""
    type: Literal["matching"] = "matching"
    matching_pairs: list[MatchingPair] = Field(default_factory=list)

    @field_validator("matching_pairs", mode="before")
    @classmethod
    def _pairs_from_sequences(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [
                {"left": p[0], "right": p[1]} if isinstance(p, (list, tuple)) and len(p) == 2 else p
                for p in value
            ]
        return value


class ShortAnswerQuestion(_QuestionBase):
    type: Literal["short-answer"] = "short-answer"


QuizQuestion = Annotated[
    Union[
        MultipleChoiceQuestion,
        TrueFalseQuestion,
        FillBlankQuestion,
        MatchingQuestion,
        ShortAnswerQuestion,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[QuizQuestion] = TypeAdapter(QuizQuestion)


def parse_question(data: QuizQuestion | dict) -> QuizQuestion:
    """Validate a question payload into its tagged variant."""
    if isinstance(data, _QuestionBase):
        return data
    try:
        return _adapter.validate_python(data)
    except ValidationError as e:
        question_id = data.get("id") if isinstance(data, dict) else None
        raise InvalidArgumentError(
            f"Invalid quiz question {question_id!r}: {e.error_count()} validation error(s)",
            question_id=question_id,
            errors=e.errors(include_url=False),
        ) from e


def parse_questions(items: Iterable[QuizQuestion | dict]) -> list[QuizQuestion]:
    return [parse_question(item) for item in items]
