"""Structural validation and normalisation for submitted question lists.

Used for template create/update, ad-hoc quiz creation and edited template
copies. Validation runs on the raw payload first; sanitisation (trim,
truncate, escape) is applied only to lists that pass.
"""

from __future__ import annotations

from typing import Any

from classquiz.constants.quiz_constants import (
    MAX_QUESTIONS,
    MIN_QUESTIONS,
    OPTION_TEXT_MAX_LENGTH,
    QUESTION_TEXT_MAX_LENGTH,
    QUESTION_TYPE_ENUMERATION,
    QUESTION_TYPE_MULTIPLE_CHOICE,
)
from classquiz.core.models import EnumerationKey, MultipleChoiceKey, Question, coerce_points
from classquiz.core.sanitizer import sanitize_text


class QuestionValidationError(ValueError):
    """Raised when a question list fails structural validation."""


def validate_questions(raw_questions: Any) -> list[Question]:
    """Validate a raw question list and return sanitised ``Question`` objects."""
    if not isinstance(raw_questions, list):
        raise QuestionValidationError("Questions must be provided as a list.")
    if len(raw_questions) < MIN_QUESTIONS:
        raise QuestionValidationError("At least one question is required.")
    if len(raw_questions) > MAX_QUESTIONS:
        raise QuestionValidationError(f"Maximum {MAX_QUESTIONS} questions allowed.")

    for position, raw in enumerate(raw_questions, start=1):
        _check_question(position, raw)
    return [_prepare_question(raw) for raw in raw_questions]


def _question_type(raw: dict[str, Any]) -> str:
    return raw.get("type") or QUESTION_TYPE_MULTIPLE_CHOICE


def _check_question(position: int, raw: Any) -> None:
    if not isinstance(raw, dict):
        raise QuestionValidationError(f"Question {position} is malformed.")

    question_type = _question_type(raw)
    if question_type not in (QUESTION_TYPE_MULTIPLE_CHOICE, QUESTION_TYPE_ENUMERATION):
        raise QuestionValidationError(
            f"Question {position} has unknown type '{question_type}'."
        )

    if not str(raw.get("question") or "").strip():
        raise QuestionValidationError(f"Question {position}: question text cannot be empty.")

    if question_type == QUESTION_TYPE_MULTIPLE_CHOICE:
        options = raw.get("options")
        if not isinstance(options, list) or not options:
            raise QuestionValidationError(f"Question {position}: at least one option is required.")
        if any(not str(option or "").strip() for option in options):
            raise QuestionValidationError(f"Question {position}: option text cannot be empty.")
        index = _correct_index(raw.get("correctAnswer"))
        if index is None or not 0 <= index < len(options):
            raise QuestionValidationError(
                f"Question {position}: correct answer must be the index of one of its options."
            )
    else:
        answer = raw.get("correctAnswer")
        if answer is None or not str(answer).strip():
            raise QuestionValidationError(f"Question {position}: correct answer cannot be empty.")


def _correct_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _prepare_question(raw: dict[str, Any]) -> Question:
    points = coerce_points(raw.get("points"))
    text = sanitize_text(raw["question"], QUESTION_TEXT_MAX_LENGTH)
    if _question_type(raw) == QUESTION_TYPE_MULTIPLE_CHOICE:
        key: MultipleChoiceKey | EnumerationKey = MultipleChoiceKey(
            options=[sanitize_text(option, OPTION_TEXT_MAX_LENGTH) for option in raw["options"]],
            correct_index=_correct_index(raw["correctAnswer"]),
        )
    else:
        key = EnumerationKey(correct_text=str(raw["correctAnswer"]).strip())
    return Question(text=text, key=key, points=points)
