"""Logging configuration helpers for the quiz service.

Every message that leaves the process goes through ``sanitize_error`` so that
e-mail addresses, tokens, credentials and identifiers never land in logs.
Outside development, ``log_error`` keeps only the context label.
"""

from __future__ import annotations

import logging
import re
from logging import Logger

from classquiz.constants.environment import get_log_level, is_development

GENERIC_ERROR_MESSAGE = "An error occurred"

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"AIza[a-zA-Z0-9_-]{35}"), "[API_KEY]"),
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL]"),
    (re.compile(r"(password|pwd|token|key|secret)=\S+", re.IGNORECASE), r"\1=[REDACTED]"),
    (re.compile(r"uid:\s*['\"]?[a-zA-Z0-9]{20,}['\"]?", re.IGNORECASE), "uid: [UID]"),
    (re.compile(r"[a-zA-Z0-9]{32,}"), "[TOKEN]"),
)


def sanitize_error(error: object) -> str:
    """Return the error's message with sensitive substrings masked."""
    if isinstance(error, str):
        message = error
    elif isinstance(error, BaseException):
        message = str(error) or type(error).__name__
    elif error is not None and getattr(error, "message", None):
        message = str(error.message)
    else:
        message = GENERIC_ERROR_MESSAGE

    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


class SensitiveDataFilter(logging.Filter):
    """Rewrites each record's rendered message through ``sanitize_error``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = sanitize_error(record.getMessage())
        record.args = None
        return True


def configure_logging() -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
            handler.addFilter(SensitiveDataFilter())
    return logging.getLogger("classquiz")


def log_error(logger: Logger, context: str, error: object) -> None:
    if is_development():
        logger.error("[%s] %s", context, sanitize_error(error))
    else:
        logger.error("[%s] %s", context, GENERIC_ERROR_MESSAGE)


def log_warning(logger: Logger, context: str, error: object) -> None:
    if is_development():
        logger.warning("[%s] %s", context, sanitize_error(error))


def log_debug(logger: Logger, context: str, data: object) -> None:
    if is_development():
        logger.debug("[DEBUG: %s] %s", context, data)
