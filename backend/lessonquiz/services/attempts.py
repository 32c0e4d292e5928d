from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from lessonquiz.core.locks import submission_lock
from lessonquiz.core.security import is_admin
from lessonquiz.models.attempt import QuizAttempt, QuizAttemptAnswer
from lessonquiz.models.audit import LearningEvent, LearningEventType
from lessonquiz.models.quiz import Quiz
from lessonquiz.models.user import User
from lessonquiz.schemas.quiz import (
    AnswerRecordOut,
    AttemptListResponse,
    AttemptResultResponse,
    AttemptSummary,
    QuizSubmitRequest,
    QuizSubmitResponse,
)
from lessonquiz.services import progress as progress_service
from lessonquiz.services.catalog import get_quiz, snapshot_quiz
from lessonquiz.services.errors import (
    AttemptNotFound,
    EnrollmentMissing,
    MalformedSubmission,
    MaxAttemptsExceeded,
    PersistenceFailure,
    ReviewNotAllowed,
    SubmissionInProgress,
)
from lessonquiz.services.grading import AnswerRecord, SubmittedAnswer, grade_submission


log = logging.getLogger(__name__)


def _answer_row(record: AnswerRecord) -> QuizAttemptAnswer:
    return QuizAttemptAnswer(
        question_id=record.question_id,
        position=record.position,
        selected_option_id=record.selected_option_id,
        selected_option_ids=(
            json.dumps([str(x) for x in record.selected_option_ids])
            if record.selected_option_ids is not None
            else None
        ),
        answer_text=record.answer_text,
        is_correct=record.is_correct,
        points_earned=int(record.points_earned),
    )


def _answer_out(row: QuizAttemptAnswer) -> AnswerRecordOut:
    ids = None
    if row.selected_option_ids is not None:
        ids = [uuid.UUID(x) for x in json.loads(row.selected_option_ids)]
    return AnswerRecordOut(
        question_id=row.question_id,
        selected_option_id=row.selected_option_id,
        selected_option_ids=ids,
        answer_text=row.answer_text,
        is_correct=row.is_correct,
        points_earned=int(row.points_earned or 0),
    )


class AttemptService:
    def __init__(self, db: Session):
        self.db = db

    def attempts_used(self, *, user_id: uuid.UUID, quiz_id: uuid.UUID) -> int:
        n = self.db.scalar(
            select(func.count(QuizAttempt.id)).where(QuizAttempt.quiz_id == quiz_id, QuizAttempt.user_id == user_id)
        )
        return int(n or 0)

    def _find_submission(self, *, user_id: uuid.UUID, submission_id: uuid.UUID) -> QuizAttempt | None:
        return self.db.scalar(
            select(QuizAttempt)
            .where(QuizAttempt.user_id == user_id, QuizAttempt.submission_id == submission_id)
            .options(selectinload(QuizAttempt.answers))
        )

    def _can_retake(self, quiz: Quiz, attempt: QuizAttempt, attempts_used: int) -> bool:
        if attempt.passed:
            return False
        if quiz.max_attempts is None:
            return True
        return attempts_used < int(quiz.max_attempts)

    def _submit_response(self, quiz: Quiz, attempt: QuizAttempt, *, attempts_used: int) -> QuizSubmitResponse:
        try:
            enrollment = progress_service.get_enrollment(self.db, user_id=attempt.user_id, module_id=attempt.module_id)
        except EnrollmentMissing:
            enrollment = None

        return QuizSubmitResponse(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            submission_id=attempt.submission_id,
            attempt_no=int(attempt.attempt_no),
            score=float(attempt.score),
            passed=bool(attempt.passed),
            correct_answers=int(attempt.correct_count),
            total_questions=int(attempt.question_count),
            points_earned=int(attempt.points_earned),
            total_points=int(attempt.points_possible),
            passing_score=int(quiz.passing_score),
            time_spent=int(attempt.time_spent_seconds),
            can_retake=self._can_retake(quiz, attempt, attempts_used),
            answers=[_answer_out(a) for a in attempt.answers] if quiz.show_results else None,
            progress=progress_service.to_schema(enrollment) if enrollment is not None else None,
        )

    def _replay(self, quiz: Quiz, existing: QuizAttempt) -> QuizSubmitResponse:
        if existing.quiz_id != quiz.id:
            raise MalformedSubmission("submission id already used for a different quiz")
        log.info("attempts: replaying submission_id=%s attempt_id=%s", str(existing.submission_id), str(existing.id))
        used = self.attempts_used(user_id=existing.user_id, quiz_id=quiz.id)
        return self._submit_response(quiz, existing, attempts_used=used)

    def submit(
        self,
        user: User,
        quiz_id: uuid.UUID,
        body: QuizSubmitRequest,
        *,
        now: datetime | None = None,
    ) -> QuizSubmitResponse:
        with submission_lock(user.id, quiz_id) as acquired:
            if not acquired:
                raise SubmissionInProgress("another submission for this quiz is being processed")
            return self._submit_locked(user, quiz_id, body, now=now)

    def _submit_locked(
        self,
        user: User,
        quiz_id: uuid.UUID,
        body: QuizSubmitRequest,
        *,
        now: datetime | None,
    ) -> QuizSubmitResponse:
        # The definition is read once; everything below grades against this snapshot.
        quiz = get_quiz(self.db, quiz_id)
        key = snapshot_quiz(quiz)

        submission_id = body.submission_id or uuid.uuid4()
        if body.submission_id is not None:
            existing = self._find_submission(user_id=user.id, submission_id=body.submission_id)
            if existing is not None:
                return self._replay(quiz, existing)

        enrollment = progress_service.get_enrollment(
            self.db, user_id=user.id, module_id=key.module_id, for_update=True
        )

        used = self.attempts_used(user_id=user.id, quiz_id=quiz.id)
        if key.max_attempts is not None and used >= int(key.max_attempts):
            raise MaxAttemptsExceeded(f"maximum attempts ({key.max_attempts}) reached for this quiz")

        answers = [
            SubmittedAnswer(
                question_id=a.question_id,
                selected_option_id=a.selected_option_id,
                answer_text=a.answer_text,
            )
            for a in body.answers
        ]
        result = grade_submission(key, answers)

        now = now or datetime.now(timezone.utc)
        time_spent = int(body.time_spent or 0)

        attempt = QuizAttempt(
            id=uuid.uuid4(),
            quiz_id=quiz.id,
            user_id=user.id,
            module_id=key.module_id,
            submission_id=submission_id,
            attempt_no=used + 1,
            started_at=now - timedelta(seconds=time_spent),
            submitted_at=now,
            time_spent_seconds=time_spent,
            score=result.score,
            passed=result.passed,
            points_earned=result.points_earned,
            points_possible=result.points_possible,
            correct_count=result.correct_count,
            question_count=result.question_count,
            answers=[_answer_row(r) for r in result.records],
        )

        try:
            self.db.add(attempt)
            self.db.flush()

            first_pass = progress_service.apply_attempt(
                enrollment,
                progress_service.AttemptOutcome(attempt_id=attempt.id, score=result.score, passed=result.passed),
                now=now,
            )

            self.db.add(
                LearningEvent(
                    user_id=user.id,
                    type=LearningEventType.quiz_submitted,
                    ref_id=quiz.id,
                    meta=json.dumps(
                        {"attempt_id": str(attempt.id), "score": result.score, "passed": result.passed},
                        ensure_ascii=False,
                    ),
                )
            )
            if first_pass:
                self.db.add(
                    LearningEvent(
                        user_id=user.id,
                        type=LearningEventType.module_completed,
                        ref_id=key.module_id,
                        meta=json.dumps({"attempt_id": str(attempt.id)}, ensure_ascii=False),
                    )
                )

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self._find_submission(user_id=user.id, submission_id=submission_id)
            if existing is not None:
                return self._replay(quiz, existing)
            log.exception("attempts: integrity failure quiz_id=%s user_id=%s", str(quiz.id), str(user.id))
            raise PersistenceFailure("could not record attempt, please retry") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            log.exception("attempts: persistence failure quiz_id=%s user_id=%s", str(quiz.id), str(user.id))
            raise PersistenceFailure("could not record attempt, please retry") from e

        log.info(
            "attempts: graded quiz_id=%s user_id=%s attempt_id=%s score=%s passed=%s points=%s/%s",
            str(quiz.id),
            str(user.id),
            str(attempt.id),
            result.score,
            result.passed,
            result.points_earned,
            result.points_possible,
        )
        return self._submit_response(quiz, attempt, attempts_used=used + 1)

    def list_attempts(self, user: User, quiz_id: uuid.UUID, *, target_user_id: uuid.UUID | None = None) -> AttemptListResponse:
        quiz = get_quiz(self.db, quiz_id)
        owner_id = user.id
        if target_user_id is not None and target_user_id != user.id:
            if not is_admin(user):
                raise ReviewNotAllowed("cannot view another learner's attempts")
            owner_id = target_user_id

        rows = self.db.scalars(
            select(QuizAttempt)
            .where(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == owner_id)
            .order_by(QuizAttempt.attempt_no.desc())
        ).all()

        return AttemptListResponse(
            quiz_id=quiz.id,
            user_id=owner_id,
            attempts=[
                AttemptSummary(
                    attempt_id=a.id,
                    attempt_no=int(a.attempt_no),
                    score=float(a.score),
                    passed=bool(a.passed),
                    time_spent=int(a.time_spent_seconds),
                    started_at=a.started_at,
                    submitted_at=a.submitted_at,
                )
                for a in rows
            ],
        )

    def attempt_result(self, user: User, attempt_id: uuid.UUID) -> AttemptResultResponse:
        attempt = self.db.scalar(
            select(QuizAttempt).where(QuizAttempt.id == attempt_id).options(selectinload(QuizAttempt.answers))
        )
        admin = is_admin(user)
        if attempt is None or (attempt.user_id != user.id and not admin):
            raise AttemptNotFound("attempt not found")

        quiz = get_quiz(self.db, attempt.quiz_id)
        if not admin and not quiz.allow_review:
            raise ReviewNotAllowed("review is not allowed for this quiz")

        return AttemptResultResponse(
            attempt_id=attempt.id,
            quiz_id=attempt.quiz_id,
            user_id=attempt.user_id,
            attempt_no=int(attempt.attempt_no),
            score=float(attempt.score),
            passed=bool(attempt.passed),
            passing_score=int(quiz.passing_score),
            points_earned=sum(int(a.points_earned or 0) for a in attempt.answers),
            points_possible=int(attempt.points_possible),
            time_spent=int(attempt.time_spent_seconds),
            started_at=attempt.started_at,
            submitted_at=attempt.submitted_at,
            answers=[_answer_out(a) for a in attempt.answers] if (quiz.show_results or admin) else None,
        )
