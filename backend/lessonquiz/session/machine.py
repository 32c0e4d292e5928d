"""Quiz-taking session as an explicit state machine.

``reduce(state, event)`` is pure: it returns the next state and the side
effects (``commands``) the driver has to carry out, such as arming the
countdown or sending the submission. All triggers, including the learner's
submit button and the countdown reaching zero, go through it, so "only the
first trigger wins" is the single phase check in ``_begin_submission``.

Phases::

    NOT_STARTED -> IN_PROGRESS -> SUBMITTING -> COMPLETED
                        ^             |
                        +-- failure --+  (manual submit)
                                      +--> EXPIRED  (timer-forced submit failed)

``ABANDONED`` is terminal: the session was closed before submitting and
nothing was sent.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

from lessonquiz.models.quiz import QuestionType
from lessonquiz.schemas.quiz import AnswerIn, QuestionPublic, QuizPublic, QuizSubmitRequest, QuizSubmitResponse


class Phase(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


class Trigger(str, enum.Enum):
    MANUAL = "manual"
    TIMER = "timer"


AnswerValue = uuid.UUID | frozenset[uuid.UUID] | str


# Events


@dataclass(frozen=True)
class Start:
    at: float


@dataclass(frozen=True)
class SetAnswer:
    question_id: uuid.UUID
    value: AnswerValue | Iterable[uuid.UUID] | None


@dataclass(frozen=True)
class ToggleOption:
    question_id: uuid.UUID
    option_id: uuid.UUID


@dataclass(frozen=True)
class GoTo:
    index: int


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Prev:
    pass


@dataclass(frozen=True)
class AnimationDone:
    pass


@dataclass(frozen=True)
class Tick:
    at: float


@dataclass(frozen=True)
class Submit:
    at: float


@dataclass(frozen=True)
class SubmitSucceeded:
    result: QuizSubmitResponse


@dataclass(frozen=True)
class SubmitFailed:
    error: str
    retryable: bool = True


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Retake:
    quiz: QuizPublic | None = None


@dataclass(frozen=True)
class Abandon:
    pass


Event = (
    Start | SetAnswer | ToggleOption | GoTo | Next | Prev | AnimationDone | Tick | Submit
    | SubmitSucceeded | SubmitFailed | Retry | Retake | Abandon
)


# Commands


@dataclass(frozen=True)
class ArmCountdown:
    seconds: int


@dataclass(frozen=True)
class StopCountdown:
    pass


@dataclass(frozen=True)
class ScheduleAnimationEnd:
    index: int


@dataclass(frozen=True)
class SubmissionPayload:
    quiz_id: uuid.UUID
    request: QuizSubmitRequest

    @property
    def submission_id(self) -> uuid.UUID:
        return self.request.submission_id


@dataclass(frozen=True)
class SendSubmission:
    payload: SubmissionPayload
    trigger: Trigger


Command = ArmCountdown | StopCountdown | ScheduleAnimationEnd | SendSubmission


@dataclass(frozen=True)
class SessionState:
    quiz: QuizPublic
    phase: Phase = Phase.NOT_STARTED
    order: tuple[uuid.UUID, ...] = ()
    index: int = 0
    target_index: int | None = None
    # Pending answers; never mutated in place, every change builds a new dict.
    answers: Mapping[uuid.UUID, AnswerValue] = field(default_factory=dict)
    time_remaining: int | None = None
    started_at: float | None = None
    submission_id: uuid.UUID | None = None
    pending: SubmissionPayload | None = None
    trigger: Trigger | None = None
    result: QuizSubmitResponse | None = None
    error: str | None = None
    error_retryable: bool = False

    @property
    def animating(self) -> bool:
        return self.target_index is not None

    @property
    def total_questions(self) -> int:
        return len(self.order)

    @property
    def questions(self) -> dict[uuid.UUID, QuestionPublic]:
        return {q.id: q for q in self.quiz.questions}

    @property
    def current_question(self) -> QuestionPublic | None:
        if not self.order:
            return None
        return self.questions.get(self.order[self.index])

    @property
    def answered_count(self) -> int:
        return sum(1 for qid in self.order if _has_value(self.answers.get(qid)))

    @property
    def score(self) -> float | None:
        return self.result.score if self.result is not None else None

    @property
    def passed(self) -> bool | None:
        return self.result.passed if self.result is not None else None

    @property
    def attempts(self) -> int:
        if self.result is not None:
            return int(self.result.attempt_no)
        return int(self.quiz.attempts_used)

    @property
    def can_retake(self) -> bool:
        return self.phase == Phase.COMPLETED and self.result is not None and bool(self.result.can_retake)


Transition = tuple[SessionState, tuple[Command, ...]]


def initial_state(quiz: QuizPublic) -> SessionState:
    return SessionState(quiz=quiz)


def _has_value(value: AnswerValue | None) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, frozenset):
        return bool(value)
    return True


def _coerce_answer(question: QuestionPublic, value) -> AnswerValue | None:
    if value is None:
        return None
    if question.type == QuestionType.MULTIPLE_ANSWER:
        if isinstance(value, (str, uuid.UUID)):
            raise ValueError(f"question {question.id} takes a set of option ids")
        return frozenset(uuid.UUID(str(v)) for v in value)
    if question.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
        if isinstance(value, (set, frozenset, list, tuple)):
            raise ValueError(f"question {question.id} takes a single option id")
        return uuid.UUID(str(value))
    if not isinstance(value, str):
        raise ValueError(f"question {question.id} takes a text answer")
    return value


def build_request(state: SessionState, *, at: float, trigger: Trigger) -> QuizSubmitRequest:
    """Wire answers for every answered question, in display order."""

    questions = state.questions
    answers: list[AnswerIn] = []
    for qid in state.order:
        value = state.answers.get(qid)
        if not _has_value(value):
            continue
        q = questions[qid]
        if q.type == QuestionType.MULTIPLE_ANSWER:
            answers.append(AnswerIn(question_id=qid, selected_option_id=sorted(value, key=str)))
        elif q.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE):
            answers.append(AnswerIn(question_id=qid, selected_option_id=value))
        else:
            answers.append(AnswerIn(question_id=qid, answer_text=value))

    time_limit = state.quiz.time_limit
    if time_limit:
        if trigger == Trigger.TIMER:
            spent = int(time_limit)
        else:
            spent = int(time_limit) - int(state.time_remaining or 0)
    else:
        spent = int(max(0.0, at - float(state.started_at or at)))

    return QuizSubmitRequest(
        answers=answers,
        time_spent=max(0, spent),
        submission_id=state.submission_id or uuid.uuid4(),
    )


def _begin_submission(state: SessionState, *, at: float, trigger: Trigger) -> Transition:
    if state.phase != Phase.IN_PROGRESS:
        return state, ()

    request = build_request(state, at=at, trigger=trigger)
    payload = SubmissionPayload(quiz_id=state.quiz.id, request=request)
    nxt = replace(
        state,
        phase=Phase.SUBMITTING,
        submission_id=request.submission_id,
        pending=payload,
        trigger=trigger,
        error=None,
        error_retryable=False,
    )
    return nxt, (StopCountdown(), SendSubmission(payload=payload, trigger=trigger))


def _navigate(state: SessionState, index: int) -> Transition:
    if state.phase != Phase.IN_PROGRESS or state.animating:
        return state, ()
    if index < 0 or index >= state.total_questions or index == state.index:
        return state, ()
    return replace(state, target_index=index), (ScheduleAnimationEnd(index=index),)


def reduce(state: SessionState, event: Event) -> Transition:
    phase = state.phase

    if isinstance(event, Start):
        if phase != Phase.NOT_STARTED:
            return state, ()
        limit = state.quiz.time_limit if state.quiz.time_limit and state.quiz.time_limit > 0 else None
        nxt = replace(
            state,
            phase=Phase.IN_PROGRESS,
            order=tuple(q.id for q in state.quiz.questions),
            index=0,
            target_index=None,
            answers={},
            time_remaining=limit,
            started_at=event.at,
            submission_id=None,
            pending=None,
            trigger=None,
            result=None,
            error=None,
            error_retryable=False,
        )
        return nxt, ((ArmCountdown(seconds=limit),) if limit else ())

    if isinstance(event, SetAnswer):
        if phase != Phase.IN_PROGRESS:
            return state, ()
        question = state.questions.get(event.question_id)
        if question is None:
            raise ValueError(f"question {event.question_id} is not part of this quiz")
        value = _coerce_answer(question, event.value)
        answers = dict(state.answers)
        if value is None:
            answers.pop(question.id, None)
        else:
            answers[question.id] = value
        return replace(state, answers=answers), ()

    if isinstance(event, ToggleOption):
        if phase != Phase.IN_PROGRESS:
            return state, ()
        question = state.questions.get(event.question_id)
        if question is None or question.type != QuestionType.MULTIPLE_ANSWER:
            raise ValueError(f"question {event.question_id} is not a multiple-answer question")
        current = state.answers.get(question.id) or frozenset()
        toggled = current - {event.option_id} if event.option_id in current else current | {event.option_id}
        answers = dict(state.answers)
        answers[question.id] = frozenset(toggled)
        return replace(state, answers=answers), ()

    if isinstance(event, GoTo):
        return _navigate(state, int(event.index))

    if isinstance(event, Next):
        return _navigate(state, state.index + 1)

    if isinstance(event, Prev):
        return _navigate(state, state.index - 1)

    if isinstance(event, AnimationDone):
        if state.target_index is None:
            return state, ()
        return replace(state, index=state.target_index, target_index=None), ()

    if isinstance(event, Tick):
        if phase != Phase.IN_PROGRESS or state.time_remaining is None:
            return state, ()
        remaining = max(0, state.time_remaining - 1)
        ticked = replace(state, time_remaining=remaining)
        if remaining == 0:
            return _begin_submission(ticked, at=event.at, trigger=Trigger.TIMER)
        return ticked, ()

    if isinstance(event, Submit):
        if phase == Phase.EXPIRED:
            return reduce(state, Retry())
        return _begin_submission(state, at=event.at, trigger=Trigger.MANUAL)

    if isinstance(event, Retry):
        if phase != Phase.EXPIRED or state.pending is None:
            return state, ()
        nxt = replace(state, phase=Phase.SUBMITTING, error=None, error_retryable=False)
        return nxt, (SendSubmission(payload=state.pending, trigger=Trigger.TIMER),)

    if isinstance(event, SubmitSucceeded):
        if phase != Phase.SUBMITTING:
            return state, ()
        if state.pending is not None and event.result.submission_id != state.pending.submission_id:
            return state, ()
        nxt = replace(
            state,
            phase=Phase.COMPLETED,
            result=event.result,
            answers={},
            pending=None,
            target_index=None,
            error=None,
            error_retryable=False,
        )
        return nxt, ()

    if isinstance(event, SubmitFailed):
        if phase != Phase.SUBMITTING:
            return state, ()
        if state.trigger == Trigger.TIMER:
            # Time is up: no more answering, but keep everything for a manual retry.
            return replace(state, phase=Phase.EXPIRED, error=event.error, error_retryable=event.retryable), ()
        nxt = replace(state, phase=Phase.IN_PROGRESS, error=event.error, error_retryable=event.retryable)
        if nxt.time_remaining:
            return nxt, (ArmCountdown(seconds=nxt.time_remaining),)
        return nxt, ()

    if isinstance(event, Retake):
        if not state.can_retake:
            return state, ()
        return initial_state(event.quiz or state.quiz), ()

    if isinstance(event, Abandon):
        if phase in (Phase.SUBMITTING, Phase.COMPLETED, Phase.ABANDONED):
            return state, ()
        nxt = replace(state, phase=Phase.ABANDONED, answers={}, pending=None, target_index=None)
        return nxt, (StopCountdown(),)

    raise TypeError(f"unknown session event: {event!r}")
