from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field

from lessonquiz.models.quiz import QuestionType
from lessonquiz.schemas.base import WireModel
from lessonquiz.schemas.progress import EnrollmentProgress


class OptionPublic(WireModel):
    id: uuid.UUID
    text: str
    position: int = 0


class QuestionPublic(WireModel):
    id: uuid.UUID
    type: QuestionType
    prompt: str
    points: int
    position: int = 0
    case_sensitive: bool = False
    image_url: str | None = None
    video_url: str | None = None
    options: list[OptionPublic] = []


class QuizPublic(WireModel):
    """What a learner's session sees. Carries no correctness data at all."""

    id: uuid.UUID
    module_id: uuid.UUID
    title: str
    description: str | None = None
    passing_score: int
    time_limit: int | None = None
    max_attempts: int | None = None
    attempts_used: int = 0
    attempts_remaining: int | None = None
    questions: list[QuestionPublic]


class OptionReview(WireModel):
    id: uuid.UUID
    text: str
    position: int = 0
    is_correct: bool


class QuestionReview(WireModel):
    id: uuid.UUID
    type: QuestionType
    prompt: str
    points: int
    position: int = 0
    case_sensitive: bool = False
    explanation: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    options: list[OptionReview] = []


class QuizReview(WireModel):
    id: uuid.UUID
    module_id: uuid.UUID
    title: str
    description: str | None = None
    passing_score: int
    time_limit: int | None = None
    max_attempts: int | None = None
    shuffle_questions: bool = False
    show_results: bool = True
    allow_review: bool = True
    questions: list[QuestionReview]


class AnswerIn(WireModel):
    question_id: uuid.UUID
    selected_option_id: uuid.UUID | list[uuid.UUID] | None = None
    answer_text: str | None = None


class QuizSubmitRequest(WireModel):
    answers: list[AnswerIn] = []
    time_spent: int = Field(default=0, ge=0)
    submission_id: uuid.UUID | None = None


class AnswerRecordOut(WireModel):
    question_id: uuid.UUID
    selected_option_id: uuid.UUID | None = None
    selected_option_ids: list[uuid.UUID] | None = None
    answer_text: str | None = None
    is_correct: bool | None = None
    points_earned: int = 0


class QuizSubmitResponse(WireModel):
    attempt_id: uuid.UUID
    quiz_id: uuid.UUID
    submission_id: uuid.UUID
    attempt_no: int
    score: float
    passed: bool
    correct_answers: int
    total_questions: int
    points_earned: int
    total_points: int
    passing_score: int
    time_spent: int
    can_retake: bool
    answers: list[AnswerRecordOut] | None = None
    progress: EnrollmentProgress | None = None


class AttemptSummary(WireModel):
    attempt_id: uuid.UUID
    attempt_no: int
    score: float
    passed: bool
    time_spent: int
    started_at: datetime
    submitted_at: datetime


class AttemptListResponse(WireModel):
    quiz_id: uuid.UUID
    user_id: uuid.UUID
    attempts: list[AttemptSummary]


class AttemptResultResponse(WireModel):
    attempt_id: uuid.UUID
    quiz_id: uuid.UUID
    user_id: uuid.UUID
    attempt_no: int
    score: float
    passed: bool
    passing_score: int
    points_earned: int
    points_possible: int
    time_spent: int
    started_at: datetime
    submitted_at: datetime
    answers: list[AnswerRecordOut] | None = None
