import pytest

from classquiz.core.models import EnumerationKey, MultipleChoiceKey
from classquiz.core.question_validator import (
    QuestionValidationError,
    coerce_points,
    validate_questions,
)
from tests.factories import enum_question, mc_question


class TestValidateQuestions:
    def test_valid_mixed_list(self):
        questions = validate_questions([mc_question(points=2), enum_question(points=3)])
        assert [q.question_type for q in questions] == ["multiple-choice", "enumeration"]
        assert isinstance(questions[0].key, MultipleChoiceKey)
        assert questions[0].key.correct_index == 1
        assert isinstance(questions[1].key, EnumerationKey)
        assert questions[1].key.correct_text == "Paris"
        assert [q.points for q in questions] == [2, 3]

    def test_empty_list_rejected(self):
        with pytest.raises(QuestionValidationError, match="At least one question"):
            validate_questions([])

    def test_not_a_list_rejected(self):
        with pytest.raises(QuestionValidationError):
            validate_questions({"question": "x"})

    def test_hundred_questions_allowed(self):
        assert len(validate_questions([mc_question()] * 100)) == 100

    def test_hundred_and_one_rejected(self):
        with pytest.raises(QuestionValidationError, match="Maximum 100"):
            validate_questions([mc_question()] * 101)

    def test_blank_question_text_rejected(self):
        with pytest.raises(QuestionValidationError, match="Question 2: question text"):
            validate_questions([mc_question(), enum_question(text="   ")])

    def test_blank_option_rejected(self):
        with pytest.raises(QuestionValidationError, match="option text"):
            validate_questions([mc_question(options=("A", "  ", "C"))])

    def test_missing_options_rejected(self):
        with pytest.raises(QuestionValidationError, match="at least one option"):
            validate_questions([mc_question(options=())])

    def test_out_of_range_correct_index_rejected(self):
        with pytest.raises(QuestionValidationError, match="index of one of its options"):
            validate_questions([mc_question(correct=3)])

    def test_blank_enumeration_answer_rejected(self):
        with pytest.raises(QuestionValidationError, match="correct answer cannot be empty"):
            validate_questions([enum_question(correct="  ")])

    def test_unknown_type_rejected(self):
        raw = mc_question()
        raw["type"] = "essay"
        with pytest.raises(QuestionValidationError, match="unknown type"):
            validate_questions([raw])

    def test_missing_type_defaults_to_multiple_choice(self):
        raw = mc_question()
        del raw["type"]
        assert validate_questions([raw])[0].question_type == "multiple-choice"

    def test_text_is_sanitized_after_validation(self):
        raw = mc_question(text="  " + "q" * 600 + "  ", options=("<i>A</i>", "B"), correct=0)
        question = validate_questions([raw])[0]
        assert question.text == "q" * 500
        assert question.key.options[0] == "&lt;i&gt;A&lt;/i&gt;"

    def test_numeric_enumeration_answer_is_stringified(self):
        assert validate_questions([enum_question(correct=42)])[0].key.correct_text == "42"


class TestCoercePoints:
    @pytest.mark.parametrize(
        "raw, expected",
        [(None, 1), ("", 1), ("abc", 1), (0, 1), (-4, 1), (3, 3), ("5", 5), (2.9, 2), (True, 1)],
    )
    def test_coercion(self, raw, expected):
        assert coerce_points(raw) == expected
