"""Deployment settings read from the process environment (and a local .env)."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

ENVIRONMENT_VARIABLE: str = "CLASSQUIZ_ENV"
LOG_LEVEL_VARIABLE: str = "CLASSQUIZ_LOG_LEVEL"
DEFAULT_ENVIRONMENT: str = "production"
DEFAULT_LOG_LEVEL: str = "INFO"


def get_environment() -> str:
    return os.getenv(ENVIRONMENT_VARIABLE, DEFAULT_ENVIRONMENT).strip().lower()


def is_development() -> bool:
    return get_environment() == "development"


def get_log_level() -> str:
    return os.getenv(LOG_LEVEL_VARIABLE, DEFAULT_LOG_LEVEL).strip().upper()
