"""FastAPI server that exposes the quiz and template entry points."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from classquiz.constants.about import APP_NAME, APP_VERSION
from classquiz.constants.network_constants import (
    CALLER_ID_HEADER,
    CALLER_NAME_HEADER,
    DEFAULT_HOST,
    DEFAULT_PORT,
)
from classquiz.constants.environment import get_log_level
from classquiz.core.errors import QuizServiceError, RejectionKind
from classquiz.core.models import Quiz, Template, TemplateStats
from classquiz.core.quiz_manager import QuizManager

_STATUS_BY_KIND: dict[RejectionKind, int] = {
    RejectionKind.UNAUTHENTICATED: 401,
    RejectionKind.INVALID_ARGUMENT: 400,
    RejectionKind.NOT_FOUND: 404,
    RejectionKind.PERMISSION_DENIED: 403,
    RejectionKind.FAILED_PRECONDITION: 400,
    RejectionKind.ALREADY_EXISTS: 409,
    RejectionKind.RESOURCE_EXHAUSTED: 429,
    RejectionKind.INTERNAL: 500,
}


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SubmitQuizPayload(_Payload):
    """Payload schema for a quiz submission."""

    quiz_id: str | None = Field(default=None, alias="quizId")
    class_id: str | None = Field(default=None, alias="classId")
    answers: Any = None


class QuizPayload(_Payload):
    """Payload schema for ad-hoc quizzes and quizzes created from templates."""

    title: str | None = None
    class_id: str | None = Field(default=None, alias="classId")
    deadline: str | None = None
    questions: list[Any] | None = None
    grading_scale: str | None = Field(default=None, alias="gradingScale")
    passing_grade: float | None = Field(default=None, alias="passingGrade")


class TemplatePayload(_Payload):
    """Payload schema for template create and partial update."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    subcategory: str | None = None
    questions: list[Any] | None = None
    grading_scale: str | None = Field(default=None, alias="gradingScale")
    passing_grade: float | None = Field(default=None, alias="passingGrade")
    is_public: bool | None = Field(default=None, alias="isPublic")
    tags: list[str] | None = None


class DuplicatePayload(_Payload):
    new_name: str | None = Field(default=None, alias="newName")


def _as_document(payload: BaseModel) -> dict[str, Any]:
    """Only fields the client actually sent, under their stored (camelCase) names."""
    return payload.model_dump(by_alias=True, exclude_unset=True)


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


def get_caller_id(x_user_id: str | None = Header(None, alias=CALLER_ID_HEADER)) -> str | None:
    """Caller identity forwarded by the authentication proxy; absence is rejected by the core."""
    return x_user_id or None


def get_caller_name(x_user_name: str | None = Header(None, alias=CALLER_NAME_HEADER)) -> str | None:
    return x_user_name or None


def _quiz_response(quiz: Quiz) -> dict[str, object]:
    return jsonable_encoder({"id": quiz.id, **quiz.to_document()})


def _template_response(template: Template) -> dict[str, object]:
    return jsonable_encoder(template.to_response())


def _stats_response(stats: TemplateStats) -> dict[str, object]:
    return jsonable_encoder(
        {
            "timesUsed": stats.times_used,
            "lastUsedAt": stats.last_used_at,
            "questionCount": stats.question_count,
            "totalPoints": stats.total_points,
            "recentUsage": [{"id": usage.id, **usage.to_document()} for usage in stats.recent_usage],
        }
    )


def create_api_app(quiz_manager: QuizManager) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await quiz_manager.drain_background_writes()

    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION, lifespan=lifespan)
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @app.exception_handler(QuizServiceError)
    async def handle_rejection(request: Request, exc: QuizServiceError) -> JSONResponse:
        return JSONResponse(status_code=_STATUS_BY_KIND[exc.kind], content={"error": exc.to_dict()})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # --- Quizzes ---

    @app.post("/quizzes/submit")
    async def submit_quiz(
        payload: SubmitQuizPayload,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return await manager.submit_quiz(caller_id, payload.quiz_id, payload.class_id, payload.answers)

    @app.get("/quizzes/{quiz_id}/questions")
    async def get_quiz_questions(
        quiz_id: str,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return await manager.get_quiz_questions(caller_id, quiz_id)

    @app.post("/quizzes", status_code=201)
    async def create_quiz(
        payload: QuizPayload,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        quiz = await manager.create_quiz(caller_id, _as_document(payload))
        return _quiz_response(quiz)

    @app.post("/templates/{template_id}/quizzes", status_code=201)
    async def create_quiz_from_template(
        template_id: str,
        payload: QuizPayload,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        created = await manager.create_quiz_from_template(caller_id, template_id, _as_document(payload))
        return _quiz_response(created.quiz)

    # --- Templates ---

    @app.post("/templates", status_code=201)
    async def create_template(
        payload: TemplatePayload,
        caller_id: str | None = Depends(get_caller_id),
        caller_name: str | None = Depends(get_caller_name),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        template = await manager.create_template(caller_id, _as_document(payload), caller_name)
        return _template_response(template)

    @app.get("/templates")
    async def list_templates(
        category: str | None = None,
        sort_by: str = "createdAt",
        sort_direction: str = "desc",
        limit: int | None = None,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        templates = await manager.list_templates(
            caller_id,
            category=category,
            sort_by=sort_by,
            sort_direction=sort_direction,
            limit=limit,
        )
        return {"items": [_template_response(template) for template in templates]}

    @app.get("/templates/search")
    async def search_templates(
        q: str | None = None,
        category: str | None = None,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        templates = await manager.search_templates(caller_id, q, category=category)
        return {"items": [_template_response(template) for template in templates]}

    @app.get("/templates/public")
    async def get_public_templates(
        category: str | None = None,
        limit: int | None = None,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        templates = await manager.get_public_templates(caller_id, category, limit)
        return {"items": [_template_response(template) for template in templates]}

    @app.get("/templates/{template_id}")
    async def get_template(
        template_id: str,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _template_response(await manager.get_template(caller_id, template_id))

    @app.get("/templates/{template_id}/stats")
    async def get_template_stats(
        template_id: str,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        return _stats_response(await manager.get_template_stats(caller_id, template_id))

    @app.patch("/templates/{template_id}")
    async def update_template(
        template_id: str,
        payload: TemplatePayload,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        template = await manager.update_template(caller_id, template_id, _as_document(payload))
        return _template_response(template)

    @app.delete("/templates/{template_id}", status_code=204)
    async def delete_template(
        template_id: str,
        caller_id: str | None = Depends(get_caller_id),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> Response:
        await manager.delete_template(caller_id, template_id)
        return Response(status_code=204)

    @app.post("/templates/{template_id}/duplicate", status_code=201)
    async def duplicate_template(
        template_id: str,
        payload: DuplicatePayload | None = None,
        caller_id: str | None = Depends(get_caller_id),
        caller_name: str | None = Depends(get_caller_name),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        new_name = payload.new_name if payload else None
        template = await manager.duplicate_template(caller_id, template_id, new_name, caller_name)
        return _template_response(template)

    return app


def run_api_server(
    quiz_manager: QuizManager,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API in the foreground until interrupted."""
    app = create_api_app(quiz_manager)
    config = uvicorn.Config(app=app, host=host, port=port, log_level=get_log_level().lower())
    server = uvicorn.Server(config)
    server.run()
