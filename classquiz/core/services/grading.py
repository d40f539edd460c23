"""Scores submitted answers against a stored answer key."""

from __future__ import annotations

import math
from typing import Any, Sequence

from classquiz.core.models import EnumerationKey, GradeOutcome, MultipleChoiceKey, Question

_MISSING = object()


class GradingEngine:
    """Count-based grading: every question weighs the same regardless of points."""

    def grade(self, questions: Sequence[Question], answers: Sequence[Any]) -> GradeOutcome:
        total = len(questions)
        correct = 0
        for index, question in enumerate(questions):
            answer = answers[index] if index < len(answers) else _MISSING
            if answer is not _MISSING and self.is_correct(question, answer):
                correct += 1
        return GradeOutcome(
            score=self.percentage(correct, total),
            correct_answers=correct,
            total_questions=total,
        )

    @staticmethod
    def is_correct(question: Question, answer: Any) -> bool:
        key = question.key
        if isinstance(key, MultipleChoiceKey):
            # Strict numeric compare: "1" and True never match index 1.
            if isinstance(answer, bool) or not isinstance(answer, (int, float)):
                return False
            return answer == key.correct_index
        if isinstance(key, EnumerationKey):
            return _stringify(answer).strip().lower() == key.correct_text.strip().lower()
        return False

    @staticmethod
    def percentage(correct: int, total: int) -> int:
        """Round half up to an integer percentage; an empty quiz scores 0."""
        if total <= 0:
            return 0
        return math.floor(correct / total * 100 + 0.5)


def _stringify(answer: Any) -> str:
    if answer is None:
        return "null"
    if isinstance(answer, bool):
        return "true" if answer else "false"
    if isinstance(answer, float) and answer.is_integer():
        return str(int(answer))
    return str(answer)
