"""Document store collection names."""

QUIZZES: str = "quizzes"
QUIZ_RESULTS: str = "quizResults"
QUIZ_REQUESTS: str = "quizRequests"
TEMPLATES: str = "templates"
TEMPLATE_USAGE: str = "templateUsage"
CLASSES: str = "classes"
