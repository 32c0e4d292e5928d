from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from lessonquiz.core.security import get_current_user
from lessonquiz.db.session import get_db
from lessonquiz.models.user import User
from lessonquiz.schemas.progress import EnrollmentProgress
from lessonquiz.services import progress as progress_service

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/modules/{module_id}", response_model=EnrollmentProgress)
def module_progress(module_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    try:
        mid = uuid.UUID(module_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="invalid module_id") from e

    enrollment = progress_service.get_enrollment(db, user_id=user.id, module_id=mid)
    return progress_service.to_schema(enrollment)
