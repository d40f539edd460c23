"""Rejection vocabulary surfaced to callers of the quiz service."""

from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from classquiz.utils.logging_config import log_error

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class RejectionKind(Enum):
    """Stable rejection kinds; clients branch on ``value``."""

    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid-argument"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    FAILED_PRECONDITION = "failed-precondition"
    ALREADY_EXISTS = "already-exists"
    RESOURCE_EXHAUSTED = "resource-exhausted"
    INTERNAL = "internal"


class QuizServiceError(Exception):
    """Raised when a request is rejected; carries a kind and a caller-safe message."""

    def __init__(self, kind: RejectionKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return f"QuizServiceError({self.kind.value!r}, {self.message!r})"


def require_caller(caller_id: str | None, message: str = "User must be authenticated.") -> str:
    if not caller_id:
        raise QuizServiceError(RejectionKind.UNAUTHENTICATED, message)
    return caller_id


def entry_point(
    context: str, internal_message: str
) -> Callable[[Callable[..., Awaitable[_T]]], Callable[..., Awaitable[_T]]]:
    """Collapse unexpected failures into a logged, generic ``internal`` rejection."""

    def decorator(func: Callable[..., Awaitable[_T]]) -> Callable[..., Awaitable[_T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> _T:
            try:
                return await func(*args, **kwargs)
            except QuizServiceError:
                raise
            except Exception as exc:
                log_error(logger, context, exc)
                raise QuizServiceError(RejectionKind.INTERNAL, internal_message) from exc

        return wrapper

    return decorator
