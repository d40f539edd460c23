"""Static metadata describing ClassQuiz."""

APP_NAME = "ClassQuiz"
APP_VERSION = "0.1.0"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ClassQuiz grades classroom quizzes on the server so answer keys never reach "
    "students, and lets teachers build quizzes from reusable templates."
)
