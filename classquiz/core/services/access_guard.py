"""Ordered checks that gate a student's submission to a quiz."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from classquiz.constants import collections
from classquiz.core.errors import QuizServiceError, RejectionKind
from classquiz.core.models import Quiz, utc_now
from classquiz.core.store import DocumentStore


@dataclass(slots=True)
class QuizAccess:
    """A quiz and its class after every check has passed."""

    quiz: Quiz
    class_data: dict[str, Any]


class QuizAccessGuard:
    """Read-only validation; the first failing check decides the rejection.

    Checks and the later result write are not transactional, so two
    concurrent submissions can both pass the duplicate check.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def load_quiz(self, quiz_id: str) -> Quiz:
        document = await self._store.get(collections.QUIZZES, quiz_id)
        if document is None:
            raise QuizServiceError(RejectionKind.NOT_FOUND, "Quiz not found.")
        return Quiz.from_document(document.id, document.data)

    async def authorize_submission(self, quiz_id: str, class_id: str, student_id: str) -> QuizAccess:
        quiz = await self.load_quiz(quiz_id)

        if quiz.class_id != class_id:
            raise QuizServiceError(
                RejectionKind.PERMISSION_DENIED,
                "Quiz does not belong to the specified class.",
            )

        if quiz.is_past_deadline(self._clock()):
            raise QuizServiceError(RejectionKind.FAILED_PRECONDITION, "Quiz deadline has passed.")

        class_document = await self._store.get(collections.CLASSES, class_id)
        if class_document is None:
            raise QuizServiceError(RejectionKind.NOT_FOUND, "Class not found.")

        students = class_document.data.get("students") or []
        if student_id not in students:
            raise QuizServiceError(
                RejectionKind.PERMISSION_DENIED,
                "Student is not enrolled in this class.",
            )

        existing = await self._store.query(
            collections.QUIZ_RESULTS,
            equals={"quizId": quiz_id, "studentId": student_id},
        )
        if existing:
            raise QuizServiceError(
                RejectionKind.ALREADY_EXISTS,
                "You have already submitted this quiz.",
            )

        return QuizAccess(quiz=quiz, class_data=class_document.data)
