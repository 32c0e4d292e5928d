from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from lessonquiz.core.redis_client import get_redis, redis_ready
from lessonquiz.db import session as db_session

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    try:
        db = db_session.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as e:
        raise HTTPException(status_code=503, detail="db not ready") from e

    if not redis_ready(get_redis()):
        raise HTTPException(status_code=503, detail="redis not ready")

    return {"status": "ready"}
