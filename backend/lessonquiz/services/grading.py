"""Auto-grading of quiz submissions.

Everything here is a pure function of an authoritative quiz snapshot
(``QuizKey``) and the learner's submitted answers. Nothing reads the database
and nothing is random, so grading the same pair twice always produces the same
records and score.

Rules per question type:

- MULTIPLE_CHOICE / TRUE_FALSE: the selected option must be the correct one.
- MULTIPLE_ANSWER: the selected set must equal the set of correct options
  exactly. No partial credit.
- IDENTIFICATION / FILL_BLANK: trimmed text equality with the accepted answer,
  case-insensitive unless the question is flagged case sensitive.
- ESSAY: never auto-graded. ``is_correct`` stays ``None`` and no points are
  earned until someone reviews it.

Questions without an answer earn nothing. Essay points still count towards the
total, so a quiz containing essays cannot reach 100% before manual review.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from lessonquiz.models.quiz import QuestionType
from lessonquiz.services.errors import MalformedSubmission


SINGLE_OPTION_TYPES = frozenset({QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE})
TEXT_MATCH_TYPES = frozenset({QuestionType.IDENTIFICATION, QuestionType.FILL_BLANK})


@dataclass(frozen=True)
class OptionKey:
    id: uuid.UUID
    text: str
    is_correct: bool


@dataclass(frozen=True)
class QuestionKey:
    id: uuid.UUID
    type: QuestionType
    points: int
    options: tuple[OptionKey, ...] = ()
    case_sensitive: bool = False

    @property
    def correct_option_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(o.id for o in self.options if o.is_correct)

    @property
    def accepted_text(self) -> str | None:
        for o in self.options:
            if o.is_correct:
                return o.text
        return None


@dataclass(frozen=True)
class QuizKey:
    """Immutable grading snapshot of a quiz, correct answers included.

    Only the grading path ever sees this type; learners get
    ``lessonquiz.schemas.quiz.QuizPublic`` instead.
    """

    id: uuid.UUID
    module_id: uuid.UUID
    passing_score: int
    questions: tuple[QuestionKey, ...]
    time_limit: int | None = None
    max_attempts: int | None = None

    @property
    def points_possible(self) -> int:
        return sum(int(q.points) for q in self.questions)


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: uuid.UUID
    selected_option_id: uuid.UUID | list[uuid.UUID] | tuple[uuid.UUID, ...] | None = None
    answer_text: str | None = None

    @property
    def is_blank(self) -> bool:
        return self.selected_option_id is None and self.answer_text is None


@dataclass(frozen=True)
class AnswerRecord:
    question_id: uuid.UUID
    position: int
    selected_option_id: uuid.UUID | None = None
    selected_option_ids: tuple[uuid.UUID, ...] | None = None
    answer_text: str | None = None
    is_correct: bool | None = False
    points_earned: int = 0

    @property
    def answered(self) -> bool:
        return (
            self.selected_option_id is not None
            or self.selected_option_ids is not None
            or self.answer_text is not None
        )


@dataclass(frozen=True)
class GradingResult:
    records: tuple[AnswerRecord, ...]
    points_earned: int
    points_possible: int
    score: float
    passed: bool

    @property
    def correct_count(self) -> int:
        return sum(1 for r in self.records if r.is_correct is True)

    @property
    def question_count(self) -> int:
        return len(self.records)


def percentage(earned: int, possible: int) -> int:
    """Whole-number percentage rounded half up; 0 when nothing is possible."""

    if possible <= 0:
        return 0
    return (200 * int(earned) + int(possible)) // (2 * int(possible))


def _shape_error(question: QuestionKey, expected: str) -> MalformedSubmission:
    return MalformedSubmission(f"question {question.id} ({question.type.value}) expects {expected}")


def _normalize_payload(question: QuestionKey, answer: SubmittedAnswer) -> AnswerRecord:
    """Check the answer shape against the question type, without grading it."""

    sel = answer.selected_option_id
    text = answer.answer_text

    if question.type in SINGLE_OPTION_TYPES:
        if not isinstance(sel, uuid.UUID) or text is not None:
            raise _shape_error(question, "a single selectedOptionId")
        return AnswerRecord(question_id=question.id, position=0, selected_option_id=sel)

    if question.type == QuestionType.MULTIPLE_ANSWER:
        if not isinstance(sel, (list, tuple)) or text is not None:
            raise _shape_error(question, "a list of selectedOptionId values")
        if not all(isinstance(x, uuid.UUID) for x in sel):
            raise _shape_error(question, "a list of selectedOptionId values")
        ids = tuple(sorted(set(sel), key=str))
        return AnswerRecord(question_id=question.id, position=0, selected_option_ids=ids)

    if sel is not None or not isinstance(text, str):
        raise _shape_error(question, "answerText")
    return AnswerRecord(question_id=question.id, position=0, answer_text=text)


def normalize_answers(quiz: QuizKey, answers: Sequence[SubmittedAnswer]) -> dict[uuid.UUID, AnswerRecord]:
    """Validate a whole submission before any of it is graded.

    An entry whose payload fields are all null means "not answered" and is
    treated exactly like an omitted entry. Any other problem rejects the
    submission as a whole.
    """

    by_id = {q.id: q for q in quiz.questions}
    seen: set[uuid.UUID] = set()
    out: dict[uuid.UUID, AnswerRecord] = {}

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            raise MalformedSubmission(f"question {answer.question_id} does not belong to this quiz")
        if answer.question_id in seen:
            raise MalformedSubmission(f"question {answer.question_id} answered more than once")
        seen.add(answer.question_id)

        if answer.is_blank:
            continue
        out[question.id] = _normalize_payload(question, answer)

    return out


def grade_question(question: QuestionKey, payload: AnswerRecord | None) -> tuple[bool | None, int]:
    if question.type == QuestionType.ESSAY:
        return None, 0

    if payload is None:
        return False, 0

    if question.type in SINGLE_OPTION_TYPES:
        correct = question.correct_option_ids
        ok = len(correct) == 1 and payload.selected_option_id in correct

    elif question.type == QuestionType.MULTIPLE_ANSWER:
        ok = frozenset(payload.selected_option_ids or ()) == question.correct_option_ids

    elif question.type in TEXT_MATCH_TYPES:
        expected = question.accepted_text
        got = payload.answer_text
        if expected is None or got is None:
            ok = False
        elif question.case_sensitive:
            ok = got.strip() == expected.strip()
        else:
            ok = got.strip().casefold() == expected.strip().casefold()

    else:
        ok = False

    return ok, (int(question.points) if ok else 0)


def grade_submission(quiz: QuizKey, answers: Sequence[SubmittedAnswer]) -> GradingResult:
    payloads = normalize_answers(quiz, answers)

    records: list[AnswerRecord] = []
    earned = 0
    for position, question in enumerate(quiz.questions):
        payload = payloads.get(question.id)
        is_correct, points = grade_question(question, payload)
        earned += points
        records.append(
            AnswerRecord(
                question_id=question.id,
                position=position,
                selected_option_id=payload.selected_option_id if payload else None,
                selected_option_ids=payload.selected_option_ids if payload else None,
                answer_text=payload.answer_text if payload else None,
                is_correct=is_correct,
                points_earned=points,
            )
        )

    possible = quiz.points_possible
    score = float(percentage(earned, possible))
    passed = possible > 0 and score >= float(quiz.passing_score)

    return GradingResult(
        records=tuple(records),
        points_earned=earned,
        points_possible=possible,
        score=score,
        passed=passed,
    )
