"""Template CRUD with ownership rules, a per-owner quota and usage statistics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from classquiz.constants import collections
from classquiz.constants.quiz_constants import (
    ALL_CATEGORIES_FILTER,
    DEFAULT_CATEGORY,
    DEFAULT_CREATOR_NAME,
    DEFAULT_GRADING_SCALE,
    DEFAULT_PASSING_GRADE,
    DESCRIPTION_MAX_LENGTH,
    MAX_TEMPLATES_PER_OWNER,
    RECENT_USAGE_LIMIT,
    TAG_MAX_LENGTH,
    TEMPLATE_CATEGORIES,
    TITLE_MAX_LENGTH,
)
from classquiz.core.errors import QuizServiceError, RejectionKind
from classquiz.core.models import Template, TemplateStats, TemplateUsage, total_points, utc_now
from classquiz.core.question_validator import QuestionValidationError, validate_questions
from classquiz.core.sanitizer import measure_document, sanitize_tags, sanitize_text
from classquiz.core.store import SERVER_TIMESTAMP, DocumentStore
from classquiz.utils.logging_config import log_warning

logger = logging.getLogger(__name__)

_SORT_DIRECTIONS = ("asc", "desc")
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _invalid(message: str) -> QuizServiceError:
    return QuizServiceError(RejectionKind.INVALID_ARGUMENT, message)


def validated_question_documents(raw_questions: Any) -> list[dict[str, Any]]:
    try:
        questions = validate_questions(raw_questions)
    except QuestionValidationError as exc:
        raise _invalid(str(exc)) from exc
    return [question.to_document() for question in questions]


def _check_category(category: Any) -> str:
    category = category or DEFAULT_CATEGORY
    if category not in TEMPLATE_CATEGORIES:
        raise _invalid(f"Unknown template category '{category}'.")
    return category


def check_passing_grade(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
        raise _invalid("Passing grade must be a number between 0 and 100.")
    return int(value)


def _sort_templates(templates: list[Template], sort_by: str, direction: str) -> list[Template]:
    keyed = [(template.to_document().get(sort_by), template) for template in templates]
    present = [pair for pair in keyed if pair[0] is not None]
    missing = [template for value, template in keyed if value is None]
    try:
        present.sort(key=lambda pair: pair[0], reverse=direction == "desc")
    except TypeError as exc:
        raise _invalid(f"Templates cannot be sorted by '{sort_by}'.") from exc
    return [template for _, template in present] + missing


def _copy_name(name: str) -> str:
    """Default duplicate name, capped like any other name; ``name`` is already escaped."""
    suffix = " (Copy)"
    base = name[: TITLE_MAX_LENGTH - len(suffix)]
    if len(base) < len(name):
        amp = base.rfind("&")
        if amp != -1 and ";" not in base[amp:]:
            base = base[:amp]
    return f"{base.rstrip()}{suffix}"


def _usage_recency(record: TemplateUsage) -> tuple[bool, datetime]:
    return (record.used_at is not None, record.used_at or _EPOCH)


class TemplateService:
    """Owner-only writes; reads allowed for the owner or when a template is public."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    # --- Reads ---

    async def get_template(self, caller_id: str, template_id: str) -> Template:
        template = await self._load(template_id)
        if not template.is_readable_by(caller_id):
            raise QuizServiceError(
                RejectionKind.PERMISSION_DENIED,
                "You do not have permission to view this template.",
            )
        return template

    async def list_templates(
        self,
        caller_id: str,
        category: str | None = None,
        sort_by: str = "createdAt",
        sort_direction: str = "desc",
        limit: int | None = None,
    ) -> list[Template]:
        if sort_direction not in _SORT_DIRECTIONS:
            raise _invalid("Sort direction must be 'asc' or 'desc'.")
        documents = await self._store.query(collections.TEMPLATES, equals={"createdBy": caller_id})
        templates = [Template.from_document(doc.id, doc.data) for doc in documents]
        if category and category != ALL_CATEGORIES_FILTER:
            templates = [template for template in templates if template.category == category]
        templates = _sort_templates(templates, sort_by, sort_direction)
        if limit is not None and limit > 0:
            templates = templates[:limit]
        return templates

    async def search_templates(
        self, caller_id: str, search_query: str | None, **filters: Any
    ) -> list[Template]:
        templates = await self.list_templates(caller_id, **filters)
        needle = (search_query or "").strip().lower()
        if not needle:
            return templates
        return [
            template
            for template in templates
            if needle in template.name.lower()
            or needle in template.description.lower()
            or any(needle in tag.lower() for tag in template.tags)
        ]

    async def get_public_templates(
        self, category: str | None = None, limit: int | None = None
    ) -> list[Template]:
        equals: dict[str, Any] = {"isPublic": True}
        if category and category != ALL_CATEGORIES_FILTER:
            equals["category"] = category
        documents = await self._store.query(collections.TEMPLATES, equals=equals)
        templates = sorted(
            (Template.from_document(doc.id, doc.data) for doc in documents),
            key=lambda template: template.times_used,
            reverse=True,
        )
        if limit is not None and limit > 0:
            templates = templates[:limit]
        return templates

    async def get_template_stats(self, caller_id: str, template_id: str) -> TemplateStats:
        template = await self.get_template(caller_id, template_id)
        documents = await self._store.query(
            collections.TEMPLATE_USAGE,
            equals={"templateId": template_id, "usedBy": caller_id},
        )
        usage = [TemplateUsage.from_document(doc.id, doc.data) for doc in documents]
        usage.sort(key=_usage_recency, reverse=True)
        return TemplateStats(
            times_used=template.times_used,
            last_used_at=template.last_used_at,
            question_count=template.question_count,
            total_points=template.total_points,
            recent_usage=usage[:RECENT_USAGE_LIMIT],
        )

    # --- Writes ---

    async def create_template(
        self, caller_id: str, data: Mapping[str, Any], caller_name: str | None = None
    ) -> Template:
        await self._enforce_quota(caller_id)

        name = str(data.get("name") or "").strip()
        if not name:
            raise _invalid("Template name is required.")
        questions = data.get("questions")
        if not questions:
            raise _invalid("Template must have at least one question.")
        question_documents = validated_question_documents(questions)

        document = {
            "name": sanitize_text(name, TITLE_MAX_LENGTH),
            "description": sanitize_text(data.get("description") or "", DESCRIPTION_MAX_LENGTH),
            "category": _check_category(data.get("category")),
            "subcategory": sanitize_text(data.get("subcategory") or "", TITLE_MAX_LENGTH),
            "createdBy": caller_id,
            "createdByName": sanitize_text(
                data.get("createdByName") or caller_name or DEFAULT_CREATOR_NAME, TITLE_MAX_LENGTH
            ),
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "questions": question_documents,
            "gradingScale": data.get("gradingScale") or DEFAULT_GRADING_SCALE,
            "passingGrade": check_passing_grade(data.get("passingGrade", DEFAULT_PASSING_GRADE)),
            "totalPoints": sum(question["points"] for question in question_documents),
            "questionCount": len(question_documents),
            "timesUsed": 0,
            "lastUsedAt": None,
            "isPublic": bool(data.get("isPublic", False)),
            "isPreMade": False,
            "tags": sanitize_tags(data.get("tags"), TAG_MAX_LENGTH),
        }
        return await self._persist_new(document)

    async def duplicate_template(
        self,
        caller_id: str,
        template_id: str,
        new_name: str | None = None,
        caller_name: str | None = None,
    ) -> Template:
        original = await self.get_template(caller_id, template_id)
        await self._enforce_quota(caller_id)

        name = sanitize_text(new_name, TITLE_MAX_LENGTH) if new_name and new_name.strip() else None
        document = original.to_document()
        document.update(
            {
                "name": name or _copy_name(original.name),
                "createdBy": caller_id,
                "createdByName": caller_name or DEFAULT_CREATOR_NAME,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "totalPoints": total_points(original.questions),
                "questionCount": len(original.questions),
                "timesUsed": 0,
                "lastUsedAt": None,
                "isPublic": False,
                "isPreMade": False,
            }
        )
        return await self._persist_new(document)

    async def update_template(
        self, caller_id: str, template_id: str, updates: Mapping[str, Any]
    ) -> Template:
        existing = await self._load_owned(caller_id, template_id, "edit")

        changes: dict[str, Any] = {"updatedAt": SERVER_TIMESTAMP}
        if "name" in updates:
            name = str(updates.get("name") or "").strip()
            if not name:
                raise _invalid("Template name is required.")
            changes["name"] = sanitize_text(name, TITLE_MAX_LENGTH)
        if "description" in updates:
            changes["description"] = sanitize_text(updates.get("description") or "", DESCRIPTION_MAX_LENGTH)
        if "category" in updates:
            changes["category"] = _check_category(updates.get("category"))
        if "subcategory" in updates:
            changes["subcategory"] = sanitize_text(updates.get("subcategory") or "", TITLE_MAX_LENGTH)
        if "questions" in updates:
            question_documents = validated_question_documents(updates.get("questions"))
            changes["questions"] = question_documents
            changes["questionCount"] = len(question_documents)
            changes["totalPoints"] = sum(question["points"] for question in question_documents)
        if updates.get("gradingScale"):
            changes["gradingScale"] = updates["gradingScale"]
        if "passingGrade" in updates:
            changes["passingGrade"] = check_passing_grade(updates.get("passingGrade"))
        if "isPublic" in updates:
            changes["isPublic"] = bool(updates.get("isPublic"))
        if "tags" in updates:
            changes["tags"] = sanitize_tags(updates.get("tags"), TAG_MAX_LENGTH)

        await self._store.update(collections.TEMPLATES, template_id, changes)

        merged = existing.to_document()
        merged.update(changes)
        merged["updatedAt"] = self._clock()
        return Template.from_document(template_id, merged)

    async def delete_template(self, caller_id: str, template_id: str) -> None:
        await self._load_owned(caller_id, template_id, "delete")
        await self._store.delete(collections.TEMPLATES, template_id)

    # --- Helpers ---

    async def _load(self, template_id: str) -> Template:
        document = await self._store.get(collections.TEMPLATES, template_id)
        if document is None:
            raise QuizServiceError(RejectionKind.NOT_FOUND, "Template not found.")
        return Template.from_document(document.id, document.data)

    async def _load_owned(self, caller_id: str, template_id: str, action: str) -> Template:
        template = await self._load(template_id)
        if template.created_by != caller_id:
            raise QuizServiceError(
                RejectionKind.PERMISSION_DENIED,
                f"You do not have permission to {action} this template.",
            )
        return template

    async def _enforce_quota(self, caller_id: str) -> None:
        """Soft quota: a failed count query is logged and creation proceeds."""
        try:
            owned = await self._store.query(collections.TEMPLATES, equals={"createdBy": caller_id})
        except Exception as exc:
            log_warning(logger, "Template quota check", exc)
            return
        if len(owned) >= MAX_TEMPLATES_PER_OWNER:
            raise QuizServiceError(
                RejectionKind.RESOURCE_EXHAUSTED,
                f"Maximum template limit reached ({MAX_TEMPLATES_PER_OWNER} templates). "
                "Please delete some templates before creating new ones.",
            )

    async def _persist_new(self, document: dict[str, Any]) -> Template:
        size = measure_document(document)
        if not size.valid:
            raise _invalid(
                f"Template is too large ({size.size_kb}KB). Maximum size is {size.max_size_kb}KB. "
                "Try reducing the number of questions or shortening question text."
            )
        template_id = await self._store.add(collections.TEMPLATES, document)
        now = self._clock()
        stored = dict(document, createdAt=now, updatedAt=now)
        return Template.from_document(template_id, stored)
