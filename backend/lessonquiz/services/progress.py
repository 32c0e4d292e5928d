"""Folding finished attempts into a learner's module enrollment.

``merge_progress`` is the only place the enrollment counters change after a
quiz submission. The merge is monotone: the attempt counter only grows, the
best score never drops, and a pass is never taken back.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from lessonquiz.models.enrollment import Enrollment
from lessonquiz.schemas.progress import EnrollmentProgress
from lessonquiz.services.errors import EnrollmentMissing


log = logging.getLogger(__name__)

COMPLETE_PROGRESS = 100


@dataclass(frozen=True)
class ProgressState:
    best_score: float | None = None
    passed: bool = False
    attempt_count: int = 0
    last_attempt_id: uuid.UUID | None = None
    is_completed: bool = False
    progress: int = 0
    completed_at: datetime | None = None


@dataclass(frozen=True)
class AttemptOutcome:
    attempt_id: uuid.UUID
    score: float
    passed: bool


def merge_progress(state: ProgressState, outcome: AttemptOutcome, *, now: datetime) -> ProgressState:
    best = outcome.score if state.best_score is None else max(state.best_score, outcome.score)
    merged = replace(
        state,
        attempt_count=int(state.attempt_count) + 1,
        best_score=float(best),
        passed=bool(state.passed or outcome.passed),
        last_attempt_id=outcome.attempt_id,
    )

    if outcome.passed and not state.passed:
        merged = replace(
            merged,
            is_completed=True,
            progress=COMPLETE_PROGRESS,
            completed_at=state.completed_at or now,
        )
    return merged


def state_of(enrollment: Enrollment) -> ProgressState:
    return ProgressState(
        best_score=enrollment.best_score,
        passed=bool(enrollment.passed),
        attempt_count=int(enrollment.attempt_count or 0),
        last_attempt_id=enrollment.last_attempt_id,
        is_completed=bool(enrollment.is_completed),
        progress=int(enrollment.progress or 0),
        completed_at=enrollment.completed_at,
    )


def get_enrollment(db: Session, *, user_id: uuid.UUID, module_id: uuid.UUID, for_update: bool = False) -> Enrollment:
    stmt = select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.module_id == module_id)
    if for_update:
        stmt = stmt.with_for_update()
    enrollment = db.scalar(stmt)
    if enrollment is None:
        raise EnrollmentMissing("learner is not enrolled in this module")
    return enrollment


def apply_attempt(enrollment: Enrollment, outcome: AttemptOutcome, *, now: datetime | None = None) -> bool:
    """Write the merged state onto ``enrollment``.

    Returns True when this attempt is the one that completed the module.
    """

    now = now or datetime.now(timezone.utc)
    before = state_of(enrollment)
    after = merge_progress(before, outcome, now=now)

    enrollment.best_score = after.best_score
    enrollment.passed = after.passed
    enrollment.attempt_count = after.attempt_count
    enrollment.last_attempt_id = after.last_attempt_id
    enrollment.is_completed = after.is_completed
    enrollment.progress = after.progress
    enrollment.completed_at = after.completed_at

    first_pass = after.passed and not before.passed
    if first_pass:
        log.info(
            "progress: module completed user_id=%s module_id=%s attempt_id=%s score=%s",
            str(enrollment.user_id),
            str(enrollment.module_id),
            str(outcome.attempt_id),
            outcome.score,
        )
    return first_pass


def to_schema(enrollment: Enrollment) -> EnrollmentProgress:
    return EnrollmentProgress(
        module_id=enrollment.module_id,
        user_id=enrollment.user_id,
        best_score=enrollment.best_score,
        passed=bool(enrollment.passed),
        attempt_count=int(enrollment.attempt_count or 0),
        last_attempt_id=enrollment.last_attempt_id,
        is_completed=bool(enrollment.is_completed),
        progress=int(enrollment.progress or 0),
        completed_at=enrollment.completed_at,
    )
