from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lessonquiz.core.security import get_current_user
from lessonquiz.db.session import get_db
from lessonquiz.models.user import User
from lessonquiz.schemas.quiz import AttemptResultResponse
from lessonquiz.services.attempts import AttemptService

router = APIRouter(prefix="/attempts", tags=["attempts"])


@router.get("/{attempt_id}", response_model=AttemptResultResponse)
def attempt_results(attempt_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        aid = uuid.UUID(attempt_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid attempt_id") from e

    return AttemptService(db).attempt_result(user, aid)
