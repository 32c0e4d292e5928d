from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Iterable
from typing import Protocol

from lessonquiz.core.config import settings
from lessonquiz.schemas.quiz import QuizPublic, QuizSubmitRequest, QuizSubmitResponse
from lessonquiz.session import machine
from lessonquiz.session.errors import QuizApiError
from lessonquiz.session.machine import Phase, SessionState


log = logging.getLogger(__name__)


class SubmissionTransport(Protocol):
    def submit(self, quiz_id: uuid.UUID, request: QuizSubmitRequest) -> QuizSubmitResponse: ...


class QuizSession:
    """Drives one learner's pass through a quiz.

    Every input, whether from the learner or from a timer thread, is turned
    into an event and reduced under a single lock. The network call happens
    after the lock is released, so a slow server never blocks the countdown
    or the UI thread that is reading ``state``.

    With ``auto_timers=False`` no threads are started; call ``tick()`` and
    ``finish_animation()`` yourself.
    """

    def __init__(
        self,
        quiz: QuizPublic,
        transport: SubmissionTransport,
        *,
        clock: Callable[[], float] = time.monotonic,
        auto_timers: bool = True,
        animation_ms: int | None = None,
        on_change: Callable[[SessionState], None] | None = None,
    ):
        self._transport = transport
        self._clock = clock
        self._auto_timers = bool(auto_timers)
        self._animation_s = float(animation_ms if animation_ms is not None else settings.session_animation_ms) / 1000.0
        self._on_change = on_change

        self._lock = threading.RLock()
        self._state = machine.initial_state(quiz)
        self._countdown: threading.Timer | None = None
        self._animation: threading.Timer | None = None

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    def dispatch(self, event: machine.Event) -> SessionState:
        with self._lock:
            before = self._state
            after, commands = machine.reduce(before, event)
            self._state = after

        if after.phase != before.phase:
            log.info(
                "session: quiz_id=%s phase %s -> %s on %s",
                str(after.quiz.id),
                before.phase.value,
                after.phase.value,
                type(event).__name__,
            )
        if after is not before and self._on_change is not None:
            self._on_change(after)

        self._run(commands)
        return self.state

    def _run(self, commands: Iterable[machine.Command]) -> None:
        for cmd in commands:
            if isinstance(cmd, machine.ArmCountdown):
                self._arm_countdown()
            elif isinstance(cmd, machine.StopCountdown):
                self._stop_countdown()
            elif isinstance(cmd, machine.ScheduleAnimationEnd):
                self._schedule_animation_end()
            elif isinstance(cmd, machine.SendSubmission):
                self._send(cmd.payload)

    def _arm_countdown(self) -> None:
        if not self._auto_timers:
            return
        with self._lock:
            if self._countdown is not None:
                self._countdown.cancel()
            t = threading.Timer(1.0, self._on_countdown)
            t.daemon = True
            self._countdown = t
        t.start()

    def _on_countdown(self) -> None:
        state = self.dispatch(machine.Tick(at=self._clock()))
        if state.phase == Phase.IN_PROGRESS and state.time_remaining:
            self._arm_countdown()

    def _stop_countdown(self) -> None:
        with self._lock:
            t, self._countdown = self._countdown, None
        if t is not None:
            t.cancel()

    def _schedule_animation_end(self) -> None:
        if not self._auto_timers:
            return
        t = threading.Timer(self._animation_s, self.finish_animation)
        t.daemon = True
        with self._lock:
            self._animation = t
        t.start()

    def _send(self, payload: machine.SubmissionPayload) -> None:
        log.info(
            "session: submitting quiz_id=%s submission_id=%s answers=%s",
            str(payload.quiz_id),
            str(payload.submission_id),
            len(payload.request.answers),
        )
        try:
            result = self._transport.submit(payload.quiz_id, payload.request)
        except QuizApiError as e:
            log.warning(
                "session: submit failed quiz_id=%s submission_id=%s retryable=%s err=%s",
                str(payload.quiz_id),
                str(payload.submission_id),
                e.retryable,
                e.message,
            )
            self.dispatch(machine.SubmitFailed(error=e.message, retryable=e.retryable))
            return
        except Exception as e:
            # The session must leave SUBMITTING whatever the transport raised.
            log.exception(
                "session: submit crashed quiz_id=%s submission_id=%s",
                str(payload.quiz_id),
                str(payload.submission_id),
            )
            self.dispatch(machine.SubmitFailed(error=f"submission failed: {type(e).__name__}", retryable=True))
            return
        self.dispatch(machine.SubmitSucceeded(result=result))

    def start(self) -> SessionState:
        return self.dispatch(machine.Start(at=self._clock()))

    def answer(self, question_id: uuid.UUID, value) -> SessionState:
        return self.dispatch(machine.SetAnswer(question_id=question_id, value=value))

    def toggle(self, question_id: uuid.UUID, option_id: uuid.UUID) -> SessionState:
        return self.dispatch(machine.ToggleOption(question_id=question_id, option_id=option_id))

    def go_to(self, index: int) -> SessionState:
        return self.dispatch(machine.GoTo(index=index))

    def next(self) -> SessionState:
        return self.dispatch(machine.Next())

    def prev(self) -> SessionState:
        return self.dispatch(machine.Prev())

    def finish_animation(self) -> SessionState:
        return self.dispatch(machine.AnimationDone())

    def tick(self) -> SessionState:
        return self.dispatch(machine.Tick(at=self._clock()))

    def submit(self) -> SessionState:
        return self.dispatch(machine.Submit(at=self._clock()))

    def retry(self) -> SessionState:
        return self.dispatch(machine.Retry())

    def retake(self, quiz: QuizPublic | None = None) -> SessionState:
        return self.dispatch(machine.Retake(quiz=quiz))

    def abandon(self) -> SessionState:
        return self.dispatch(machine.Abandon())

    def close(self) -> None:
        """Stop timers. Abandons the attempt unless it was already sent."""

        if self.state.phase in (Phase.NOT_STARTED, Phase.IN_PROGRESS, Phase.EXPIRED):
            self.abandon()
        self._stop_countdown()
        with self._lock:
            t, self._animation = self._animation, None
        if t is not None:
            t.cancel()
