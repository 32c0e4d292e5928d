from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from lessonquiz.core.config import settings
from lessonquiz.core.rate_limit import rate_limit
from lessonquiz.core.security import get_current_user, is_admin
from lessonquiz.db.session import get_db
from lessonquiz.models.user import User
from lessonquiz.schemas.quiz import AttemptListResponse, QuizPublic, QuizReview, QuizSubmitRequest, QuizSubmitResponse
from lessonquiz.services.attempts import AttemptService
from lessonquiz.services.catalog import get_quiz, public_view, review_view

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def _uuid(value: str, *, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"invalid {field}") from e


@router.get("/{quiz_id}", response_model=QuizPublic)
def get_quiz_for_session(quiz_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    qid = _uuid(quiz_id, field="quiz_id")
    quiz = get_quiz(db, qid)
    used = AttemptService(db).attempts_used(user_id=user.id, quiz_id=quiz.id)
    return public_view(quiz, attempts_used=used)


@router.get("/{quiz_id}/review", response_model=QuizReview)
def get_quiz_for_review(quiz_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="forbidden")
    qid = _uuid(quiz_id, field="quiz_id")
    return review_view(get_quiz(db, qid))


@router.post("/{quiz_id}/submit", response_model=QuizSubmitResponse, status_code=201)
def submit_quiz(
    quiz_id: str,
    body: QuizSubmitRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    _: object = rate_limit(
        key_prefix="quiz_submit",
        limit=settings.submit_rate_limit,
        window_seconds=settings.submit_rate_window_seconds,
    ),
):
    qid = _uuid(quiz_id, field="quiz_id")
    return AttemptService(db).submit(user, qid, body)


@router.get("/{quiz_id}/attempts", response_model=AttemptListResponse)
def list_quiz_attempts(
    quiz_id: str,
    user_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    qid = _uuid(quiz_id, field="quiz_id")
    target = _uuid(user_id, field="user_id") if user_id else None
    return AttemptService(db).list_attempts(user, qid, target_user_id=target)
