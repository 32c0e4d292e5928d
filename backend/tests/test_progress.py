import uuid
from datetime import datetime, timedelta, timezone

import pytest

from lessonquiz.services import progress as progress_service
from lessonquiz.services.errors import EnrollmentMissing
from lessonquiz.services.progress import AttemptOutcome, ProgressState, merge_progress


T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _fold(scores_passed: list[tuple[float, bool]]) -> list[ProgressState]:
    state = ProgressState()
    states = [state]
    for i, (score, passed) in enumerate(scores_passed):
        state = merge_progress(
            state,
            AttemptOutcome(attempt_id=uuid.uuid4(), score=score, passed=passed),
            now=T0 + timedelta(minutes=i),
        )
        states.append(state)
    return states


def test_merge_is_monotone():
    states = _fold([(40.0, False), (90.0, True), (10.0, False), (75.0, True)])

    for before, after in zip(states, states[1:]):
        assert after.attempt_count == before.attempt_count + 1
        assert (after.best_score or 0) >= (before.best_score or 0)
        assert after.passed or not before.passed
        assert after.is_completed or not before.is_completed

    final = states[-1]
    assert final.best_score == 90.0
    assert final.passed is True
    assert final.progress == progress_service.COMPLETE_PROGRESS


def test_first_pass_sets_completion_once():
    states = _fold([(50.0, False), (80.0, True), (95.0, True)])
    assert states[1].completed_at is None
    assert states[1].is_completed is False
    assert states[2].completed_at == T0 + timedelta(minutes=1)
    # A later pass does not move the completion timestamp.
    assert states[3].completed_at == T0 + timedelta(minutes=1)


def test_last_attempt_always_points_at_latest():
    a1, a2 = uuid.uuid4(), uuid.uuid4()
    s = merge_progress(ProgressState(), AttemptOutcome(attempt_id=a1, score=100.0, passed=True), now=T0)
    s = merge_progress(s, AttemptOutcome(attempt_id=a2, score=0.0, passed=False), now=T0)
    assert s.last_attempt_id == a2
    assert s.best_score == 100.0
    assert s.passed is True


def test_missing_enrollment_raises(db):
    with pytest.raises(EnrollmentMissing):
        progress_service.get_enrollment(db, user_id=uuid.uuid4(), module_id=uuid.uuid4())


def test_progress_endpoint(client, learner, learner_headers, make_quiz, all_correct):
    ns = make_quiz(enroll=learner)

    r = client.get(f"/progress/modules/{ns.module_id}", headers=learner_headers)
    assert r.status_code == 200
    assert r.json()["attemptCount"] == 0
    assert r.json()["bestScore"] is None

    r = client.post(f"/quizzes/{ns.quiz_id}/submit", json=all_correct(ns), headers=learner_headers)
    assert r.status_code == 201

    r = client.get(f"/progress/modules/{ns.module_id}", headers=learner_headers)
    body = r.json()
    assert body["attemptCount"] == 1
    assert body["bestScore"] == 80.0
    assert body["passed"] is True
    assert body["isCompleted"] is True
    assert body["progress"] == 100
    assert body["completedAt"] is not None


def test_progress_endpoint_without_enrollment(client, learner_headers, make_quiz):
    ns = make_quiz()
    r = client.get(f"/progress/modules/{ns.module_id}", headers=learner_headers)
    assert r.status_code == 409
    assert r.json()["error_code"] == "enrollment_missing"
