"""
Unit tests for question graders.

Tests grade() and is_answer_complete() of each grader and the registry.
"""

import pytest

from src.core.errors import InvalidArgumentError
from src.grading import GRADERS, QuestionType, get_grader, grade_question, parse_question
from src.grading.questions import MatchingQuestion, TrueFalseQuestion


class TestGraderRegistry:
    """Test the grader registry."""

    def test_all_types_registered(self):
        assert set(GRADERS) == set(QuestionType)

    def test_get_grader_by_string(self):
        assert get_grader("fill-blank") is GRADERS[QuestionType.FILL_BLANK]

    def test_get_grader_by_enum(self):
        assert get_grader(QuestionType.MATCHING) is not None

    def test_get_grader_invalid_type(self):
        assert get_grader("essay") is None

    def test_choice_types_share_grader(self):
        assert get_grader("multiple-choice") is get_grader("true-false")


class TestQuestionParsing:
    """Test payload validation into tagged variants."""

    def test_question_alias_for_prompt(self):
        question = parse_question({"id": "q1", "type": "short-answer", "question": "Why?", "points": 5})
        assert question.prompt == "Why?"

    def test_true_false_defaults_options(self):
        question = parse_question({"id": "q1", "type": "true-false", "correctAnswer": 1, "points": 1})
        assert isinstance(question, TrueFalseQuestion)
        assert question.options == ["True", "False"]

    def test_unknown_type_rejected(self):
        with pytest.raises(InvalidArgumentError):
            parse_question({"id": "q1", "type": "essay", "points": 1})

    def test_choice_answer_must_be_index(self):
        with pytest.raises(InvalidArgumentError):
            parse_question(
                {"id": "q1", "type": "multiple-choice", "options": ["a", "b"], "correctAnswer": "a", "points": 1}
            )

    def test_choice_answer_out_of_options(self):
        with pytest.raises(InvalidArgumentError):
            parse_question(
                {"id": "q1", "type": "multiple-choice", "options": ["a", "b"], "correctAnswer": 2, "points": 1}
            )

    def test_negative_points_rejected(self):
        with pytest.raises(InvalidArgumentError):
            parse_question({"id": "q1", "type": "fill-blank", "correctAnswer": "x", "points": -1})

    def test_matching_pairs_from_sequences(self):
        question = parse_question(
            {"id": "q1", "type": "matching", "matchingPairs": [["MRSA", "contact"], ["TB", "airborne"]], "points": 2}
        )
        assert isinstance(question, MatchingQuestion)
        assert question.matching_pairs[1].right == "airborne"


class TestChoiceGrader:
    """Test multiple-choice and true/false grading."""

    @pytest.fixture
    def question(self):
        return {"id": "q1", "type": "multiple-choice", "options": ["a", "b", "c"], "correctAnswer": 2, "points": 10}

    def test_correct_answer(self, question):
        result = grade_question(question, 2)

        assert result.is_correct is True
        assert result.earned_points == 10
        assert result.needs_manual_review is False

    def test_incorrect_answer(self, question):
        result = grade_question(question, 0)

        assert result.is_correct is False
        assert result.earned_points == 0
        assert result.max_points == 10

    def test_bool_is_not_an_index(self):
        question = {"id": "q1", "type": "true-false", "correctAnswer": 1, "points": 1}
        assert grade_question(question, True).is_correct is False

    def test_string_index_is_wrong_shape(self, question):
        assert grade_question(question, "2").is_correct is False

    def test_missing_answer_scores_zero(self, question):
        result = grade_question(question, None)
        assert result.is_correct is False
        assert result.earned_points == 0

    def test_answer_complete(self, question):
        grader = get_grader("multiple-choice")
        parsed = parse_question(question)

        assert grader.is_answer_complete(parsed, 0) is True
        assert grader.is_answer_complete(parsed, None) is False


class TestFillBlankGrader:
    """Test fill-blank grading."""

    @pytest.fixture
    def question(self):
        return {"id": "q1", "type": "fill-blank", "correctAnswer": "Sepsis", "points": 5}

    @pytest.mark.parametrize("answer", ["Sepsis", "sepsis", "  SEPSIS  ", "\tsepsis\n"])
    def test_case_and_whitespace_ignored(self, question, answer):
        assert grade_question(question, answer).is_correct is True

    def test_wrong_word(self, question):
        assert grade_question(question, "shock").is_correct is False

    def test_non_string_answer(self, question):
        assert grade_question(question, 5).is_correct is False

    def test_blank_answer_incomplete(self, question):
        grader = get_grader("fill-blank")
        assert grader.is_answer_complete(parse_question(question), "   ") is False


class TestMatchingGrader:
    """Test all-or-nothing matching."""

    @pytest.fixture
    def question(self):
        return {
            "id": "q1",
            "type": "matching",
            "matchingPairs": [
                {"left": "MRSA", "right": "contact"},
                {"left": "TB", "right": "airborne"},
                {"left": "Influenza", "right": "droplet"},
            ],
            "points": 6,
        }

    def test_all_pairs_correct(self, question):
        result = grade_question(question, ["contact", "airborne", "droplet"])
        assert result.is_correct is True
        assert result.earned_points == 6

    def test_one_wrong_pair_scores_zero(self, question):
        result = grade_question(question, ["contact", "droplet", "airborne"])
        assert result.is_correct is False
        assert result.earned_points == 0

    def test_short_answer_list(self, question):
        assert grade_question(question, ["contact", "airborne"]).is_correct is False

    def test_empty_pairs_never_correct(self):
        question = {"id": "q1", "type": "matching", "matchingPairs": [], "points": 1}
        assert grade_question(question, []).is_correct is False

    def test_answer_complete_requires_every_slot(self, question):
        grader = get_grader("matching")
        parsed = parse_question(question)

        assert grader.is_answer_complete(parsed, ["contact", "", "droplet"]) is False
        assert grader.is_answer_complete(parsed, ["contact", "airborne", "droplet"]) is True


class TestShortAnswerGrader:
    """Test short-answer grading."""

    @pytest.fixture
    def question(self):
        return {"id": "q1", "type": "short-answer", "question": "Explain PPE doffing order.", "points": 20}

    def test_substantive_answer_gets_provisional_points(self, question):
        result = grade_question(question, "Gloves first, then gown, then mask.")

        assert result.is_correct is False
        assert result.needs_manual_review is True
        assert result.earned_points == 20

    def test_short_answer_gets_nothing(self, question):
        result = grade_question(question, "gloves")

        assert result.needs_manual_review is True
        assert result.earned_points == 0

    def test_length_counted_after_trimming(self, question):
        padded = "   " + "x" * 19 + "   "
        assert grade_question(question, padded).earned_points == 0
        assert grade_question(question, "x" * 20).earned_points == 20

    @pytest.mark.parametrize("answer", [None, 42, "a" * 50])
    def test_never_correct_always_reviewed(self, question, answer):
        result = grade_question(question, answer)
        assert result.is_correct is False
        assert result.needs_manual_review is True
