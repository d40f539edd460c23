from __future__ import annotations

from datetime import datetime, timezone

import pytest

from classquiz.constants import collections
from classquiz.core.memory_store import InMemoryDocumentStore
from classquiz.core.quiz_manager import QuizManager
from tests.factories import CLASS_ID, QUIZ_ID, STUDENT, TEACHER, FrozenClock, enum_question, mc_question


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FrozenClock) -> InMemoryDocumentStore:
    store = InMemoryDocumentStore(clock=clock)
    store.seed(collections.CLASSES, CLASS_ID, {"name": "Biology 101", "students": [STUDENT]})
    store.seed(
        collections.QUIZZES,
        QUIZ_ID,
        {
            "title": "Q1",
            "classId": CLASS_ID,
            "questions": [mc_question(), enum_question(points=2)],
            "gradingScale": "traditional",
            "passingGrade": 70,
            "totalPoints": 3,
            "deadline": None,
            "createdBy": TEACHER,
        },
    )
    return store


@pytest.fixture
def manager(store: InMemoryDocumentStore, clock: FrozenClock) -> QuizManager:
    return QuizManager(store, clock=clock)
