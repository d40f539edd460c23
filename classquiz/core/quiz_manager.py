"""Entry points for quiz submission, question delivery and template workflows."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from classquiz.constants import collections
from classquiz.constants.quiz_constants import DEFAULT_GRADING_SCALE, DEFAULT_PASSING_GRADE, TITLE_MAX_LENGTH
from classquiz.core.errors import QuizServiceError, RejectionKind, entry_point, require_caller
from classquiz.core.models import Quiz, QuizResult, Template, TemplateStats, total_points, utc_now
from classquiz.core.sanitizer import sanitize_text
from classquiz.core.services.access_guard import QuizAccessGuard
from classquiz.core.services.grading import GradingEngine
from classquiz.core.services.rate_limiter import QUIZ_REQUEST_POLICY, QUIZ_SUBMISSION_POLICY, RateLimiter
from classquiz.core.services.template_instantiation import (
    QuizInstantiation,
    TemplateInstantiationEngine,
    parse_deadline,
    parse_question_list,
    require_quiz_fields,
)
from classquiz.core.services.template_service import TemplateService, check_passing_grade
from classquiz.core.store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)


class QuizManager:
    """Facade over the rate limiter, access guard, grading and template services.

    The store is injected once; every entry point takes the caller id
    explicitly. Checks run in a fixed order: authentication, arguments, rate
    limit, access, then grading or writes.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

        # Services
        self._rate_limiter = RateLimiter(store, clock)
        self._guard = QuizAccessGuard(store, clock)
        self._grading = GradingEngine()
        self._templates = TemplateService(store, clock)
        self._instantiation = TemplateInstantiationEngine(store, self._templates, clock)

    # --- Student entry points ---

    @entry_point("Submitting quiz", "An error occurred while submitting the quiz.")
    async def submit_quiz(
        self, caller_id: str | None, quiz_id: str | None, class_id: str | None, answers: Any
    ) -> dict[str, Any]:
        student_id = require_caller(caller_id, "User must be authenticated to submit a quiz.")
        if not quiz_id or not class_id or answers is None:
            raise QuizServiceError(
                RejectionKind.INVALID_ARGUMENT,
                "Missing required fields: quizId, classId, or answers.",
            )
        if not isinstance(answers, (list, tuple)):
            raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Answers must be a list.")

        allowed = await self._rate_limiter.check_and_maybe_log(QUIZ_SUBMISSION_POLICY, student_id)
        if not allowed:
            raise QuizServiceError(
                RejectionKind.RESOURCE_EXHAUSTED,
                "Too many quiz submissions. Please wait before submitting another quiz.",
            )

        access = await self._guard.authorize_submission(quiz_id, class_id, student_id)
        outcome = self._grading.grade(access.quiz.questions, answers)

        result = QuizResult(
            quiz_id=quiz_id,
            class_id=class_id,
            student_id=student_id,
            score=outcome.score,
            correct_answers=outcome.correct_answers,
            total_questions=outcome.total_questions,
            submitted_at=SERVER_TIMESTAMP,
        )
        await self._store.add(collections.QUIZ_RESULTS, result.to_document())
        logger.info("Quiz %s graded: %d/%d", quiz_id, outcome.correct_answers, outcome.total_questions)

        return {
            "success": True,
            "score": outcome.score,
            "correctAnswers": outcome.correct_answers,
            "totalQuestions": outcome.total_questions,
            "message": "Quiz submitted successfully!",
        }

    @entry_point("Fetching quiz", "An error occurred while fetching the quiz.")
    async def get_quiz_questions(self, caller_id: str | None, quiz_id: str | None) -> dict[str, Any]:
        user_id = require_caller(caller_id)
        if not quiz_id:
            raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Missing required field: quizId.")

        allowed = await self._rate_limiter.check_and_maybe_log(QUIZ_REQUEST_POLICY, user_id, quiz_id)
        if not allowed:
            raise QuizServiceError(
                RejectionKind.RESOURCE_EXHAUSTED,
                "Too many quiz requests. Please wait before requesting another quiz.",
            )

        quiz = await self._guard.load_quiz(quiz_id)
        return {
            "quizId": quiz_id,
            "title": quiz.title,
            "classId": quiz.class_id,
            "deadline": quiz.deadline.isoformat() if quiz.deadline else None,
            "questions": [question.to_public_document() for question in quiz.questions],
        }

    # --- Teacher entry points ---

    @entry_point("Creating quiz", "Failed to create quiz. Please try again.")
    async def create_quiz(self, caller_id: str | None, data: Mapping[str, Any]) -> Quiz:
        teacher_id = require_caller(caller_id)
        title, class_id = require_quiz_fields(data)
        deadline = parse_deadline(data.get("deadline"))
        questions = parse_question_list(data.get("questions"))

        quiz = Quiz(
            id="",
            title=sanitize_text(title, TITLE_MAX_LENGTH),
            class_id=class_id,
            questions=questions,
            created_by=teacher_id,
            grading_scale=data.get("gradingScale") or DEFAULT_GRADING_SCALE,
            passing_grade=check_passing_grade(data.get("passingGrade", DEFAULT_PASSING_GRADE)),
            total_points=total_points(questions),
            deadline=deadline,
        )
        document = quiz.to_document()
        document["createdAt"] = SERVER_TIMESTAMP
        quiz.id = await self._store.add(collections.QUIZZES, document)
        quiz.created_at = self._clock()
        return quiz

    @entry_point("Creating quiz from template", "Failed to create quiz from template. Please try again.")
    async def create_quiz_from_template(
        self, caller_id: str | None, template_id: str | None, data: Mapping[str, Any]
    ) -> QuizInstantiation:
        teacher_id = require_caller(caller_id)
        if not template_id:
            raise QuizServiceError(RejectionKind.INVALID_ARGUMENT, "Template ID is required.")
        return await self._instantiation.instantiate(teacher_id, template_id, data)

    @entry_point("Template creation", "Failed to create template. Please try again.")
    async def create_template(
        self, caller_id: str | None, data: Mapping[str, Any], caller_name: str | None = None
    ) -> Template:
        owner_id = require_caller(caller_id, "User must be authenticated to create templates.")
        return await self._templates.create_template(owner_id, data, caller_name)

    @entry_point("Fetching templates", "Failed to load templates. Please try again.")
    async def list_templates(self, caller_id: str | None, **options: Any) -> list[Template]:
        return await self._templates.list_templates(require_caller(caller_id), **options)

    @entry_point("Searching templates", "Failed to search templates. Please try again.")
    async def search_templates(
        self, caller_id: str | None, search_query: str | None, **options: Any
    ) -> list[Template]:
        return await self._templates.search_templates(require_caller(caller_id), search_query, **options)

    @entry_point("Fetching public templates", "Failed to load public templates. Please try again.")
    async def get_public_templates(
        self, caller_id: str | None, category: str | None = None, limit: int | None = None
    ) -> list[Template]:
        require_caller(caller_id)
        return await self._templates.get_public_templates(category, limit)

    @entry_point("Fetching template by ID", "Failed to load template. Please try again.")
    async def get_template(self, caller_id: str | None, template_id: str) -> Template:
        return await self._templates.get_template(require_caller(caller_id), template_id)

    @entry_point("Fetching template stats", "Failed to load template statistics. Please try again.")
    async def get_template_stats(self, caller_id: str | None, template_id: str) -> TemplateStats:
        return await self._templates.get_template_stats(require_caller(caller_id), template_id)

    @entry_point("Updating template", "Failed to update template. Please try again.")
    async def update_template(
        self, caller_id: str | None, template_id: str, updates: Mapping[str, Any]
    ) -> Template:
        return await self._templates.update_template(require_caller(caller_id), template_id, updates)

    @entry_point("Deleting template", "Failed to delete template. Please try again.")
    async def delete_template(self, caller_id: str | None, template_id: str) -> None:
        await self._templates.delete_template(require_caller(caller_id), template_id)

    @entry_point("Duplicating template", "Failed to duplicate template. Please try again.")
    async def duplicate_template(
        self,
        caller_id: str | None,
        template_id: str,
        new_name: str | None = None,
        caller_name: str | None = None,
    ) -> Template:
        owner_id = require_caller(caller_id)
        return await self._templates.duplicate_template(owner_id, template_id, new_name, caller_name)

    # --- Lifecycle ---

    async def drain_background_writes(self) -> None:
        await self._instantiation.drain()
