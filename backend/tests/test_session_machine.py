import uuid

import pytest

from lessonquiz.models.quiz import QuestionType
from lessonquiz.schemas.quiz import OptionPublic, QuestionPublic, QuizPublic, QuizSubmitResponse
from lessonquiz.session import machine
from lessonquiz.session.machine import Phase, Trigger


def _quiz(*, time_limit=None) -> QuizPublic:
    def _options(*texts):
        return [OptionPublic(id=uuid.uuid4(), text=t, position=i) for i, t in enumerate(texts)]

    return QuizPublic(
        id=uuid.uuid4(),
        module_id=uuid.uuid4(),
        title="Session quiz",
        passing_score=70,
        time_limit=time_limit,
        questions=[
            QuestionPublic(id=uuid.uuid4(), type=QuestionType.MULTIPLE_CHOICE, prompt="mc", points=1, options=_options("a", "b")),
            QuestionPublic(id=uuid.uuid4(), type=QuestionType.MULTIPLE_ANSWER, prompt="ma", points=1, options=_options("x", "y", "z")),
            QuestionPublic(id=uuid.uuid4(), type=QuestionType.IDENTIFICATION, prompt="id", points=1),
        ],
    )


def _run(state, *events):
    commands = []
    for e in events:
        state, cmds = machine.reduce(state, e)
        commands.extend(cmds)
    return state, commands


def _result(state: machine.SessionState, **kw) -> QuizSubmitResponse:
    fields = dict(
        attempt_id=uuid.uuid4(),
        quiz_id=state.quiz.id,
        submission_id=state.pending.submission_id,
        attempt_no=1,
        score=33.0,
        passed=False,
        correct_answers=1,
        total_questions=3,
        points_earned=1,
        total_points=3,
        passing_score=70,
        time_spent=5,
        can_retake=True,
    )
    fields.update(kw)
    return QuizSubmitResponse(**fields)


def test_start_arms_countdown_only_with_time_limit():
    state, cmds = machine.reduce(machine.initial_state(_quiz(time_limit=60)), machine.Start(at=0.0))
    assert state.phase == Phase.IN_PROGRESS
    assert state.time_remaining == 60
    assert cmds == (machine.ArmCountdown(seconds=60),)

    state, cmds = machine.reduce(machine.initial_state(_quiz()), machine.Start(at=0.0))
    assert state.time_remaining is None
    assert cmds == ()


def test_answers_are_built_in_display_order_and_skip_blanks():
    quiz = _quiz()
    mc, ma, ident = quiz.questions
    x, y = ma.options[0].id, ma.options[1].id

    state, cmds = _run(
        machine.initial_state(quiz),
        machine.Start(at=100.0),
        machine.SetAnswer(question_id=ident.id, value="   "),
        machine.ToggleOption(question_id=ma.id, option_id=y),
        machine.ToggleOption(question_id=ma.id, option_id=x),
        machine.ToggleOption(question_id=ma.id, option_id=y),
        machine.ToggleOption(question_id=ma.id, option_id=y),
        machine.SetAnswer(question_id=mc.id, value=mc.options[1].id),
        machine.Submit(at=112.5),
    )
    assert state.phase == Phase.SUBMITTING
    assert state.answered_count == 2
    send = cmds[-1]
    assert isinstance(send, machine.SendSubmission)
    assert send.trigger == Trigger.MANUAL

    request = send.payload.request
    assert [a.question_id for a in request.answers] == [mc.id, ma.id]
    assert request.answers[0].selected_option_id == mc.options[1].id
    assert request.answers[1].selected_option_id == sorted([x, y], key=str)
    assert request.time_spent == 12
    assert request.submission_id == state.submission_id


def test_wrong_value_type_is_a_programming_error():
    quiz = _quiz()
    mc, ma, ident = quiz.questions
    state, _ = machine.reduce(machine.initial_state(quiz), machine.Start(at=0.0))

    with pytest.raises(ValueError):
        machine.reduce(state, machine.SetAnswer(question_id=ma.id, value=ma.options[0].id))
    with pytest.raises(ValueError):
        machine.reduce(state, machine.SetAnswer(question_id=ident.id, value=uuid.uuid4()))
    with pytest.raises(ValueError):
        machine.reduce(state, machine.ToggleOption(question_id=mc.id, option_id=mc.options[0].id))
    with pytest.raises(ValueError):
        machine.reduce(state, machine.SetAnswer(question_id=uuid.uuid4(), value="x"))


def test_navigation_is_bounded_and_locked_during_animation():
    state, cmds = _run(machine.initial_state(_quiz()), machine.Start(at=0.0), machine.Prev())
    assert state.index == 0
    assert cmds == []

    state, cmds = _run(state, machine.Next(), machine.Next(), machine.GoTo(index=2))
    assert state.animating
    assert state.index == 0
    assert cmds == [machine.ScheduleAnimationEnd(index=1)]

    state, _ = _run(state, machine.AnimationDone(), machine.GoTo(index=2), machine.AnimationDone(), machine.Next())
    assert state.index == 2
    assert not state.animating
    assert state.current_question.id == state.order[2]

    state, cmds = _run(state, machine.GoTo(index=7))
    assert state.index == 2
    assert cmds == []


def test_timer_expiry_forces_exactly_one_submission():
    state, _ = machine.reduce(machine.initial_state(_quiz(time_limit=2)), machine.Start(at=0.0))

    state, cmds = _run(state, machine.Tick(at=1.0), machine.Tick(at=2.0), machine.Tick(at=3.0), machine.Submit(at=3.1))
    sends = [c for c in cmds if isinstance(c, machine.SendSubmission)]
    assert len(sends) == 1
    assert sends[0].trigger == Trigger.TIMER
    assert sends[0].payload.request.time_spent == 2
    assert state.time_remaining == 0
    assert machine.StopCountdown() in cmds


def test_manual_submit_then_tick_does_not_resend():
    state, _ = machine.reduce(machine.initial_state(_quiz(time_limit=1)), machine.Start(at=0.0))
    state, cmds = _run(state, machine.Submit(at=0.5), machine.Tick(at=1.0))
    assert sum(isinstance(c, machine.SendSubmission) for c in cmds) == 1
    assert state.trigger == Trigger.MANUAL


def test_success_completes_and_discards_answers():
    quiz = _quiz()
    mc = quiz.questions[0]
    state, _ = _run(
        machine.initial_state(quiz),
        machine.Start(at=0.0),
        machine.SetAnswer(question_id=mc.id, value=mc.options[0].id),
        machine.Submit(at=5.0),
    )
    result = _result(state)
    state, cmds = machine.reduce(state, machine.SubmitSucceeded(result=result))
    assert state.phase == Phase.COMPLETED
    assert state.answers == {}
    assert state.result == result
    assert state.score == 33.0
    assert state.passed is False
    assert state.attempts == 1
    assert cmds == ()


def test_stale_result_is_ignored():
    state, _ = _run(machine.initial_state(_quiz()), machine.Start(at=0.0), machine.Submit(at=1.0))
    stale = _result(state, submission_id=uuid.uuid4())
    after, _ = machine.reduce(state, machine.SubmitSucceeded(result=stale))
    assert after.phase == Phase.SUBMITTING


def test_manual_failure_keeps_answers_and_reuses_submission_id():
    quiz = _quiz(time_limit=30)
    mc = quiz.questions[0]
    state, cmds = _run(
        machine.initial_state(quiz),
        machine.Start(at=0.0),
        machine.SetAnswer(question_id=mc.id, value=mc.options[0].id),
        machine.Submit(at=4.0),
    )
    first_sid = state.submission_id

    state, cmds = machine.reduce(state, machine.SubmitFailed(error="network down"))
    assert state.phase == Phase.IN_PROGRESS
    assert state.error == "network down"
    assert state.error_retryable is True
    assert state.answers[mc.id] == mc.options[0].id
    assert cmds == (machine.ArmCountdown(seconds=30),)

    state, cmds = machine.reduce(state, machine.Submit(at=6.0))
    assert state.phase == Phase.SUBMITTING
    assert cmds[-1].payload.submission_id == first_sid


def test_timer_failure_expires_and_retry_resends_same_payload():
    state, _ = machine.reduce(machine.initial_state(_quiz(time_limit=1)), machine.Start(at=0.0))
    state, cmds = machine.reduce(state, machine.Tick(at=1.0))
    payload = cmds[-1].payload

    state, _ = machine.reduce(state, machine.SubmitFailed(error="timeout"))
    assert state.phase == Phase.EXPIRED

    # Answering is closed once time is up.
    frozen, _ = machine.reduce(state, machine.SetAnswer(question_id=state.order[2], value="late"))
    assert frozen is state

    state, cmds = machine.reduce(state, machine.Retry())
    assert state.phase == Phase.SUBMITTING
    assert cmds == (machine.SendSubmission(payload=payload, trigger=Trigger.TIMER),)


def test_retake_only_when_server_allows():
    state, _ = _run(machine.initial_state(_quiz()), machine.Start(at=0.0), machine.Submit(at=1.0))
    done, _ = machine.reduce(state, machine.SubmitSucceeded(result=_result(state, can_retake=False)))
    same, _ = machine.reduce(done, machine.Retake())
    assert same.phase == Phase.COMPLETED

    done, _ = machine.reduce(state, machine.SubmitSucceeded(result=_result(state, can_retake=True)))
    fresh, _ = machine.reduce(done, machine.Retake())
    assert fresh.phase == Phase.NOT_STARTED
    assert fresh.answers == {}
    assert fresh.result is None


def test_abandon_sends_nothing():
    quiz = _quiz(time_limit=10)
    state, cmds = _run(
        machine.initial_state(quiz),
        machine.Start(at=0.0),
        machine.SetAnswer(question_id=quiz.questions[2].id, value="Paris"),
        machine.Abandon(),
        machine.Submit(at=2.0),
        machine.Tick(at=3.0),
    )
    assert state.phase == Phase.ABANDONED
    assert state.answers == {}
    assert not any(isinstance(c, machine.SendSubmission) for c in cmds)
