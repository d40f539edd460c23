"""Creates quizzes from templates and records template usage.

Quiz creation and usage tracking are two separate phases. The quiz write is
authoritative; the usage write runs afterwards as its own task, reports
failure only through the log and its task result, and never undoes the quiz.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Mapping

from classquiz.constants import collections
from classquiz.constants.quiz_constants import TITLE_MAX_LENGTH
from classquiz.core.errors import QuizServiceError, RejectionKind
from classquiz.core.models import Question, Quiz, TemplateUsage, parse_instant, total_points, utc_now
from classquiz.core.question_validator import QuestionValidationError, validate_questions
from classquiz.core.sanitizer import sanitize_text
from classquiz.core.services.template_service import TemplateService
from classquiz.core.store import SERVER_TIMESTAMP, DocumentStore
from classquiz.utils.logging_config import log_error

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuizInstantiation:
    """The created quiz plus the still-running usage write (resolves to success)."""

    quiz: Quiz
    usage_recorded: "asyncio.Task[bool]"


def parse_deadline(value: Any) -> datetime | None:
    try:
        return parse_instant(value)
    except (TypeError, ValueError) as exc:
        raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Deadline must be an ISO-8601 timestamp.") from exc


def parse_question_list(raw_questions: Any) -> list[Question]:
    try:
        return validate_questions(raw_questions)
    except QuestionValidationError as exc:
        raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, str(exc)) from exc


def require_quiz_fields(data: Mapping[str, Any]) -> tuple[str, str]:
    title = str(data.get("title") or "").strip()
    if not title:
        raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Quiz title is required.")
    class_id = str(data.get("classId") or "").strip()
    if not class_id:
        raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Class ID is required.")
    return title, class_id


class TemplateInstantiationEngine:
    """Copies a template's questions and grading settings into a new quiz."""

    def __init__(
        self,
        store: DocumentStore,
        templates: TemplateService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._templates = templates
        self._clock = clock
        self._pending: set[asyncio.Task[bool]] = set()

    async def instantiate(
        self, caller_id: str, template_id: str, data: Mapping[str, Any]
    ) -> QuizInstantiation:
        title, class_id = require_quiz_fields(data)
        deadline = parse_deadline(data.get("deadline"))
        template = await self._templates.get_template(caller_id, template_id)

        override = data.get("questions")
        questions = template.questions if override is None else parse_question_list(override)

        quiz = Quiz(
            id="",
            title=sanitize_text(title, TITLE_MAX_LENGTH),
            class_id=class_id,
            questions=questions,
            created_by=caller_id,
            grading_scale=template.grading_scale,
            passing_grade=template.passing_grade,
            total_points=total_points(questions),
            deadline=deadline,
            created_from_template=template_id,
        )
        document = quiz.to_document()
        document["createdAt"] = SERVER_TIMESTAMP
        quiz.id = await self._store.add(collections.QUIZZES, document)
        quiz.created_at = self._clock()
        logger.info("Quiz %s created from template %s", quiz.id, template_id)

        usage = TemplateUsage(
            template_id=template_id,
            used_by=caller_id,
            class_id=class_id,
            quiz_id=quiz.id,
            used_at=SERVER_TIMESTAMP,
        )
        return QuizInstantiation(quiz=quiz, usage_recorded=self._schedule_usage(usage))

    async def drain(self) -> None:
        """Wait for every outstanding usage write; used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def _schedule_usage(self, usage: TemplateUsage) -> "asyncio.Task[bool]":
        task = asyncio.create_task(self._record_usage(usage))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _record_usage(self, usage: TemplateUsage) -> bool:
        try:
            await self._store.increment_field(collections.TEMPLATES, usage.template_id, "timesUsed", 1)
            await self._store.update(collections.TEMPLATES, usage.template_id, {"lastUsedAt": SERVER_TIMESTAMP})
            await self._store.add(collections.TEMPLATE_USAGE, usage.to_document())
        except Exception as exc:
            log_error(logger, "Template usage tracking", exc)
            return False
        return True
