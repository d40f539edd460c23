"""Quiz and template limits shared across the core services."""

from datetime import timedelta

MIN_QUESTIONS: int = 1
MAX_QUESTIONS: int = 100
MIN_QUESTION_POINTS: int = 1

QUESTION_TEXT_MAX_LENGTH: int = 500
OPTION_TEXT_MAX_LENGTH: int = 200
TITLE_MAX_LENGTH: int = 200
DESCRIPTION_MAX_LENGTH: int = 1000
TAG_MAX_LENGTH: int = 50

MAX_TEMPLATES_PER_OWNER: int = 50
MAX_DOCUMENT_SIZE_BYTES: int = 500 * 1024
RECENT_USAGE_LIMIT: int = 10

SUBMISSION_WINDOW: timedelta = timedelta(minutes=5)
SUBMISSION_MAX_COUNT: int = 5
QUESTION_FETCH_WINDOW: timedelta = timedelta(minutes=5)
QUESTION_FETCH_MAX_COUNT: int = 10

QUESTION_TYPE_MULTIPLE_CHOICE: str = "multiple-choice"
QUESTION_TYPE_ENUMERATION: str = "enumeration"

DEFAULT_GRADING_SCALE: str = "traditional"
DEFAULT_PASSING_GRADE: int = 70
DEFAULT_CATEGORY: str = "Other"
DEFAULT_CREATOR_NAME: str = "Teacher"
ALL_CATEGORIES_FILTER: str = "All"

TEMPLATE_CATEGORIES: tuple[str, ...] = (
    "Mathematics",
    "Science",
    "English/Language Arts",
    "History/Social Studies",
    "Geography",
    "Computer Science",
    "Art & Music",
    "Physical Education",
    "Foreign Languages",
    "General Knowledge",
    "Other",
)
