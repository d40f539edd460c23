"""Fixed-window request limits backed by timestamped records in the store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from classquiz.constants import collections
from classquiz.constants.quiz_constants import (
    QUESTION_FETCH_MAX_COUNT,
    QUESTION_FETCH_WINDOW,
    SUBMISSION_MAX_COUNT,
    SUBMISSION_WINDOW,
)
from classquiz.core.models import utc_now
from classquiz.core.store import SERVER_TIMESTAMP, DocumentStore, RangeFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Which records count toward a limit, and whether an allowed request is logged.

    ``target_field`` names the field that receives the target id when the
    limiter writes its own log record. Policies without one count records
    written elsewhere (quiz submissions count the results themselves).
    """

    name: str
    collection: str
    actor_field: str
    timestamp_field: str
    window: timedelta
    max_count: int
    target_field: str | None = None

    @property
    def writes_log(self) -> bool:
        return self.target_field is not None


QUIZ_SUBMISSION_POLICY = RateLimitPolicy(
    name="quiz-submission",
    collection=collections.QUIZ_RESULTS,
    actor_field="studentId",
    timestamp_field="submittedAt",
    window=SUBMISSION_WINDOW,
    max_count=SUBMISSION_MAX_COUNT,
)

QUIZ_REQUEST_POLICY = RateLimitPolicy(
    name="quiz-request",
    collection=collections.QUIZ_REQUESTS,
    actor_field="userId",
    timestamp_field="requestedAt",
    window=QUESTION_FETCH_WINDOW,
    max_count=QUESTION_FETCH_MAX_COUNT,
    target_field="quizId",
)


class RateLimiter:
    """Counts an actor's records inside the trailing window of a policy."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def count_recent(self, policy: RateLimitPolicy, actor_id: str) -> int:
        window_start = self._clock() - policy.window
        records = await self._store.query(
            policy.collection,
            equals={policy.actor_field: actor_id},
            ranges=[RangeFilter(policy.timestamp_field, ">=", window_start)],
        )
        return len(records)

    async def check_and_maybe_log(
        self, policy: RateLimitPolicy, actor_id: str, target_id: str | None = None
    ) -> bool:
        """Return False when the actor is over the limit; nothing is written then.

        Store failures propagate unchanged.
        """
        recent = await self.count_recent(policy, actor_id)
        if recent >= policy.max_count:
            logger.info("Rate limit %s reached (%d in window)", policy.name, recent)
            return False
        if policy.writes_log:
            await self._store.add(
                policy.collection,
                {
                    policy.actor_field: actor_id,
                    policy.target_field: target_id,
                    policy.timestamp_field: SERVER_TIMESTAMP,
                },
            )
        return True
