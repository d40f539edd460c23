"""Application entry point for the ClassQuiz service."""

from __future__ import annotations

from classquiz.constants.about import APP_NAME
from classquiz.constants.environment import get_environment
from classquiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from classquiz.core.memory_store import InMemoryDocumentStore
from classquiz.core.quiz_manager import QuizManager
from classquiz.server.api_server import run_api_server
from classquiz.utils.logging_config import configure_logging


def main() -> None:
    """Initialize logging, wire the store into the quiz manager and serve the API."""
    logger = configure_logging()
    logger.info("Starting %s (%s)", APP_NAME, get_environment())

    quiz_manager = QuizManager(store=InMemoryDocumentStore())
    logger.info("API listening on http://%s:%d/", DEFAULT_HOST, DEFAULT_PORT)
    run_api_server(quiz_manager=quiz_manager, host=DEFAULT_HOST, port=DEFAULT_PORT)


if __name__ == "__main__":
    main()
