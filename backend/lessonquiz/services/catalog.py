from __future__ import annotations

import random
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lessonquiz.models.quiz import Question, QuestionType, Quiz
from lessonquiz.schemas.quiz import (
    OptionPublic,
    OptionReview,
    QuestionPublic,
    QuestionReview,
    QuizPublic,
    QuizReview,
)
from lessonquiz.services.errors import InvalidQuizDefinition, QuizNotFound
from lessonquiz.services.grading import OptionKey, QuestionKey, QuizKey


def get_quiz(db: Session, quiz_id: uuid.UUID) -> Quiz:
    """Fetch a quiz with every question and option in one round of queries."""

    quiz = db.scalar(
        select(Quiz)
        .where(Quiz.id == quiz_id)
        .options(selectinload(Quiz.questions).selectinload(Question.options))
    )
    if quiz is None:
        raise QuizNotFound("quiz not found")
    return quiz


def _question_key(q: Question) -> QuestionKey:
    if int(q.points or 0) < 1:
        raise InvalidQuizDefinition(f"question {q.id} must be worth at least one point")

    options = tuple(OptionKey(id=o.id, text=o.text or "", is_correct=bool(o.is_correct)) for o in q.options)
    n_correct = sum(1 for o in options if o.is_correct)

    if q.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE, QuestionType.IDENTIFICATION, QuestionType.FILL_BLANK):
        if n_correct != 1:
            raise InvalidQuizDefinition(f"question {q.id} ({q.type.value}) needs exactly one correct option")
    elif q.type == QuestionType.MULTIPLE_ANSWER:
        if n_correct < 1:
            raise InvalidQuizDefinition(f"question {q.id} (MULTIPLE_ANSWER) needs at least one correct option")

    return QuestionKey(
        id=q.id,
        type=q.type,
        points=int(q.points),
        options=options,
        case_sensitive=bool(q.case_sensitive),
    )


def snapshot_quiz(quiz: Quiz) -> QuizKey:
    """Freeze the authoritative definition used for grading one submission."""

    if not 0 <= int(quiz.passing_score) <= 100:
        raise InvalidQuizDefinition(f"quiz {quiz.id} passing score must be between 0 and 100")

    return QuizKey(
        id=quiz.id,
        module_id=quiz.module_id,
        passing_score=int(quiz.passing_score),
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        questions=tuple(_question_key(q) for q in quiz.questions),
    )


def attempts_remaining(quiz: Quiz | QuizKey, attempts_used: int) -> int | None:
    if quiz.max_attempts is None:
        return None
    return max(0, int(quiz.max_attempts) - int(attempts_used))


def public_view(quiz: Quiz, *, attempts_used: int = 0, rng: random.Random | None = None) -> QuizPublic:
    """Learner-facing copy of a quiz.

    Shuffling only changes what the learner sees; grading always works from
    ids against the authored definition.
    """

    rng = rng or random.Random()

    questions = list(quiz.questions)
    if quiz.shuffle_questions:
        rng.shuffle(questions)

    items: list[QuestionPublic] = []
    for q in questions:
        options = list(q.options)
        if q.shuffle_options:
            rng.shuffle(options)

        # Text-entry questions store their accepted answer as an option.
        if q.type in (QuestionType.IDENTIFICATION, QuestionType.FILL_BLANK, QuestionType.ESSAY):
            options = []

        items.append(
            QuestionPublic(
                id=q.id,
                type=q.type,
                prompt=q.prompt,
                points=int(q.points),
                position=int(q.position),
                case_sensitive=bool(q.case_sensitive),
                image_url=q.image_url,
                video_url=q.video_url,
                options=[OptionPublic(id=o.id, text=o.text, position=int(o.position)) for o in options],
            )
        )

    return QuizPublic(
        id=quiz.id,
        module_id=quiz.module_id,
        title=quiz.title,
        description=quiz.description,
        passing_score=int(quiz.passing_score),
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        attempts_used=int(attempts_used),
        attempts_remaining=attempts_remaining(quiz, attempts_used),
        questions=items,
    )


def review_view(quiz: Quiz) -> QuizReview:
    return QuizReview(
        id=quiz.id,
        module_id=quiz.module_id,
        title=quiz.title,
        description=quiz.description,
        passing_score=int(quiz.passing_score),
        time_limit=quiz.time_limit,
        max_attempts=quiz.max_attempts,
        shuffle_questions=bool(quiz.shuffle_questions),
        show_results=bool(quiz.show_results),
        allow_review=bool(quiz.allow_review),
        questions=[
            QuestionReview(
                id=q.id,
                type=q.type,
                prompt=q.prompt,
                points=int(q.points),
                position=int(q.position),
                case_sensitive=bool(q.case_sensitive),
                explanation=q.explanation,
                image_url=q.image_url,
                video_url=q.video_url,
                options=[
                    OptionReview(id=o.id, text=o.text, position=int(o.position), is_correct=bool(o.is_correct))
                    for o in q.options
                ],
            )
            for q in quiz.questions
        ],
    )
