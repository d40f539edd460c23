"""Domain models for quizzes, results and templates.

Each model converts to and from the stored document shape. Stored field names
are camelCase and must round-trip unchanged with existing data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from classquiz.constants.quiz_constants import (
    DEFAULT_CATEGORY,
    DEFAULT_CREATOR_NAME,
    DEFAULT_GRADING_SCALE,
    DEFAULT_PASSING_GRADE,
    MIN_QUESTION_POINTS,
    QUESTION_TYPE_ENUMERATION,
    QUESTION_TYPE_MULTIPLE_CHOICE,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: Any) -> datetime | None:
    """Accept a stored datetime or ISO-8601 string; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        instant = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def coerce_points(value: Any) -> int:
    """Parse points leniently; anything absent, invalid or below 1 becomes 1."""
    if isinstance(value, bool) or value is None:
        return MIN_QUESTION_POINTS
    try:
        if isinstance(value, str):
            parsed = int(float(value.strip()))
        else:
            parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        return MIN_QUESTION_POINTS
    return max(MIN_QUESTION_POINTS, parsed)


def _stored_index(value: Any) -> int | None:
    # Stored keys are compared strictly; anything but a whole number never matches.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


@dataclass(slots=True)
class MultipleChoiceKey:
    """Answer key for a multiple-choice question.

    ``correct_index`` is ``None`` when a stored key is unusable; such a
    question is still served but no answer is ever graded correct.
    """

    options: list[str]
    correct_index: int | None


@dataclass(slots=True)
class EnumerationKey:
    """Answer key for a free-text question."""

    correct_text: str


AnswerKey = MultipleChoiceKey | EnumerationKey


@dataclass(slots=True)
class Question:
    """One quiz question: shared text and points plus a type-specific answer key."""

    text: str
    key: AnswerKey
    points: int = 1

    @property
    def question_type(self) -> str:
        if isinstance(self.key, MultipleChoiceKey):
            return QUESTION_TYPE_MULTIPLE_CHOICE
        return QUESTION_TYPE_ENUMERATION

    def to_document(self) -> dict[str, Any]:
        if isinstance(self.key, MultipleChoiceKey):
            options = list(self.key.options)
            correct: Any = self.key.correct_index
        else:
            options = []
            correct = self.key.correct_text
        return {
            "type": self.question_type,
            "question": self.text,
            "options": options,
            "correctAnswer": correct,
            "points": self.points,
        }

    def to_public_document(self) -> dict[str, Any]:
        """Student-facing shape; never includes the answer key."""
        public: dict[str, Any] = {"type": self.question_type, "question": self.text}
        if isinstance(self.key, MultipleChoiceKey):
            public["options"] = list(self.key.options)
        return public

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Question":
        """Read a stored question; loosely typed points, options or keys degrade instead of raising."""
        question_type = data.get("type") or QUESTION_TYPE_MULTIPLE_CHOICE
        points = coerce_points(data.get("points"))
        if question_type == QUESTION_TYPE_MULTIPLE_CHOICE:
            options = data.get("options")
            key: AnswerKey = MultipleChoiceKey(
                options=[str(option) for option in options] if isinstance(options, list) else [],
                correct_index=_stored_index(data.get("correctAnswer")),
            )
        elif question_type == QUESTION_TYPE_ENUMERATION:
            answer = data.get("correctAnswer")
            key = EnumerationKey(correct_text="" if answer is None else str(answer))
        else:
            raise ValueError(f"Unknown question type: {question_type!r}")
        return cls(text=str(data.get("question", "")), key=key, points=points)


def total_points(questions: list[Question]) -> int:
    return sum(question.points for question in questions)


@dataclass(slots=True)
class Quiz:
    """A graded assessment bound to one class."""

    id: str
    title: str
    class_id: str
    questions: list[Question]
    created_by: str
    grading_scale: str = DEFAULT_GRADING_SCALE
    passing_grade: int = DEFAULT_PASSING_GRADE
    total_points: int = 0
    deadline: datetime | None = None
    created_from_template: str | None = None
    created_at: datetime | None = None

    def is_past_deadline(self, now: datetime) -> bool:
        return self.deadline is not None and now > self.deadline

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "title": self.title,
            "questions": [question.to_document() for question in self.questions],
            "classId": self.class_id,
            "deadline": self.deadline,
            "gradingScale": self.grading_scale,
            "passingGrade": self.passing_grade,
            "totalPoints": self.total_points,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
        }
        if self.created_from_template is not None:
            document["createdFromTemplate"] = self.created_from_template
        return document

    @classmethod
    def from_document(cls, quiz_id: str, data: dict[str, Any]) -> "Quiz":
        return cls(
            id=quiz_id,
            title=data.get("title", ""),
            class_id=data.get("classId", ""),
            questions=[Question.from_document(q) for q in data.get("questions") or []],
            created_by=data.get("createdBy", ""),
            grading_scale=data.get("gradingScale") or DEFAULT_GRADING_SCALE,
            passing_grade=data.get("passingGrade", DEFAULT_PASSING_GRADE),
            total_points=data.get("totalPoints", 0),
            deadline=parse_instant(data.get("deadline")),
            created_from_template=data.get("createdFromTemplate"),
            created_at=parse_instant(data.get("createdAt")),
        )


@dataclass(slots=True)
class GradeOutcome:
    """Aggregate grading result; carries no per-question detail."""

    score: int
    correct_answers: int
    total_questions: int


@dataclass(slots=True)
class QuizResult:
    """One student's graded attempt at one quiz."""

    quiz_id: str
    class_id: str
    student_id: str
    score: int
    correct_answers: int
    total_questions: int
    submitted_at: Any = None

    def to_document(self) -> dict[str, Any]:
        return {
            "quizId": self.quiz_id,
            "classId": self.class_id,
            "studentId": self.student_id,
            "score": self.score,
            "correctAnswers": self.correct_answers,
            "totalQuestions": self.total_questions,
            "submittedAt": self.submitted_at,
        }


@dataclass(slots=True)
class Template:
    """A reusable, named question set owned by one teacher."""

    id: str
    name: str
    created_by: str
    questions: list[Question]
    description: str = ""
    category: str = DEFAULT_CATEGORY
    subcategory: str = ""
    created_by_name: str = DEFAULT_CREATOR_NAME
    grading_scale: str = DEFAULT_GRADING_SCALE
    passing_grade: int = DEFAULT_PASSING_GRADE
    total_points: int = 0
    question_count: int = 0
    times_used: int = 0
    last_used_at: datetime | None = None
    is_public: bool = False
    is_pre_made: bool = False
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_readable_by(self, caller_id: str) -> bool:
        return self.created_by == caller_id or self.is_public

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "createdBy": self.created_by,
            "createdByName": self.created_by_name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "questions": [question.to_document() for question in self.questions],
            "gradingScale": self.grading_scale,
            "passingGrade": self.passing_grade,
            "totalPoints": self.total_points,
            "questionCount": self.question_count,
            "timesUsed": self.times_used,
            "lastUsedAt": self.last_used_at,
            "isPublic": self.is_public,
            "isPreMade": self.is_pre_made,
            "tags": list(self.tags),
        }

    def to_response(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_document()}

    @classmethod
    def from_document(cls, template_id: str, data: dict[str, Any]) -> "Template":
        questions = [Question.from_document(q) for q in data.get("questions") or []]
        return cls(
            id=template_id,
            name=data.get("name", ""),
            created_by=data.get("createdBy", ""),
            questions=questions,
            description=data.get("description", ""),
            category=data.get("category") or DEFAULT_CATEGORY,
            subcategory=data.get("subcategory", ""),
            created_by_name=data.get("createdByName") or DEFAULT_CREATOR_NAME,
            grading_scale=data.get("gradingScale") or DEFAULT_GRADING_SCALE,
            passing_grade=data.get("passingGrade", DEFAULT_PASSING_GRADE),
            total_points=data.get("totalPoints", total_points(questions)),
            question_count=data.get("questionCount", len(questions)),
            times_used=data.get("timesUsed", 0),
            last_used_at=parse_instant(data.get("lastUsedAt")),
            is_public=bool(data.get("isPublic", False)),
            is_pre_made=bool(data.get("isPreMade", False)),
            tags=list(data.get("tags") or []),
            created_at=parse_instant(data.get("createdAt")),
            updated_at=parse_instant(data.get("updatedAt")),
        )


@dataclass(slots=True)
class TemplateUsage:
    """Append-only record of a quiz created from a template."""

    template_id: str
    used_by: str
    class_id: str
    quiz_id: str
    used_at: Any = None
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "templateId": self.template_id,
            "usedBy": self.used_by,
            "usedAt": self.used_at,
            "classId": self.class_id,
            "quizId": self.quiz_id,
        }

    @classmethod
    def from_document(cls, usage_id: str, data: dict[str, Any]) -> "TemplateUsage":
        return cls(
            id=usage_id,
            template_id=data.get("templateId", ""),
            used_by=data.get("usedBy", ""),
            class_id=data.get("classId", ""),
            quiz_id=data.get("quizId", ""),
            used_at=parse_instant(data.get("usedAt")),
        )


@dataclass(slots=True)
class TemplateStats:
    """Usage summary for one template."""

    times_used: int
    last_used_at: datetime | None
    question_count: int
    total_points: int
    recent_usage: list[TemplateUsage]
