from lessonquiz.routers import attempts, health, progress, quizzes

__all__ = [
    "attempts",
    "health",
    "progress",
    "quizzes",
]
