from lessonquiz.models.user import User, UserRole
from lessonquiz.models.module import Module
from lessonquiz.models.quiz import Question, QuestionOption, QuestionType, Quiz
from lessonquiz.models.attempt import QuizAttempt, QuizAttemptAnswer
from lessonquiz.models.enrollment import Enrollment
from lessonquiz.models.audit import LearningEvent, LearningEventType

__all__ = [
    "User",
    "UserRole",
    "Module",
    "Quiz",
    "Question",
    "QuestionOption",
    "QuestionType",
    "QuizAttempt",
    "QuizAttemptAnswer",
    "Enrollment",
    "LearningEvent",
    "LearningEventType",
]
