"""
Unit tests for quiz aggregation.
"""

import pytest

from src.core.errors import InvalidArgumentError
from src.grading import grade_quiz, grade_quiz_block, is_quiz_complete


class TestGradeQuiz:
    """Test grade_quiz()."""

    def test_three_of_four_fails_at_80(self, mc_questions):
        result = grade_quiz(mc_questions, [1, 1, 1, 0], passing_score=80)

        assert result.score == 75
        assert result.passed is False
        assert result.needs_review is False
        assert result.earned_points == 75
        assert result.total_points == 100

    def test_short_answer_passes_provisionally(self, review_questions):
        answers = ["Isolate, don PPE, post signage at the door.", 0, 1, 0]
        result = grade_quiz(review_questions, answers, passing_score=80)

        assert result.score == 100
        assert result.passed is True
        assert result.needs_review is True

    def test_missing_answers_count_as_absent(self, mc_questions):
        result = grade_quiz(mc_questions, [1, 1], passing_score=50)

        assert result.score == 50
        assert result.passed is True
        assert len(result.results) == 4

    def test_extra_answers_ignored(self, mc_questions):
        result = grade_quiz(mc_questions, [1, 1, 1, 1, 3, 3], passing_score=80)
        assert result.score == 100

    def test_zero_points_quiz_scores_zero(self):
        questions = [{"id": "q1", "type": "fill-blank", "correctAnswer": "x", "points": 0}]
        result = grade_quiz(questions, ["x"], passing_score=0)

        assert result.score == 0
        assert result.passed is True

    def test_score_rounds_half_up(self):
        questions = [
            {"id": "q1", "type": "fill-blank", "correctAnswer": "a", "points": 1},
            {"id": "q2", "type": "fill-blank", "correctAnswer": "b", "points": 7},
        ]
        # 1/8 = 12.5% -> 13
        assert grade_quiz(questions, ["a", "x"], passing_score=80).score == 13

    @pytest.mark.parametrize("passing_score", [-1, 101])
    def test_passing_score_validated(self, mc_questions, passing_score):
        with pytest.raises(InvalidArgumentError):
            grade_quiz(mc_questions, [], passing_score=passing_score)

    def test_results_in_question_order(self, mc_questions):
        result = grade_quiz(mc_questions, [1, 0, 1, 0], passing_score=80)
        assert [r.question_id for r in result.results] == ["q1", "q2", "q3", "q4"]
        assert [r.is_correct for r in result.results] == [True, False, True, False]

    def test_to_dict_shape(self, mc_questions):
        data = grade_quiz(mc_questions, [1, 1, 1, 1], passing_score=80).to_dict()

        assert data["score"] == 100
        assert data["needsReview"] is False
        assert data["results"][0]["questionId"] == "q1"


class TestQuizBlock:
    """Test grade_quiz_block() and is_quiz_complete()."""

    def test_block_passing_score_used(self, mc_questions):
        block = {"questions": mc_questions, "passingScore": 70}
        assert grade_quiz_block(block, [1, 1, 1, 0]).passed is True

    def test_block_falls_back_to_80(self, mc_questions):
        block = {"questions": mc_questions}
        assert grade_quiz_block(block, [1, 1, 1, 0]).passed is False

    def test_quiz_complete(self, mc_questions):
        assert is_quiz_complete(mc_questions, [0, 1, 2, 3]) is True
        assert is_quiz_complete(mc_questions, [0, 1, 2]) is False
