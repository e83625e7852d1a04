"""Timed attempt state machine.

    MODE_SELECTION -> RUNNING -> SUBMITTING -> FINISHED
                         ^            |
                         +-- failure -+

States are immutable snapshots (``ModeSelection``, ``Running``,
``Submitting``, ``Finished``); ``AttemptSession`` methods are the transition
function. Rendering code subscribes to snapshots and never mutates them.

Timing is one tick per second from an injected ``TickScheduler``. In test mode
the session submits itself when the limit is reached. In train mode the limit
only flips ``overtime`` and the count keeps going until a manual submit.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar

from . import log
from .clock import TickScheduler
from .errors import ValidationError
from .question_engine import Question
from .results import AttemptResult, AttemptSubmission

Submitter = Callable[[AttemptSubmission], AttemptResult]
Listener = Callable[["AttemptState"], None]


class Phase(str, Enum):
    MODE_SELECTION = "mode_selection"
    RUNNING = "running"
    SUBMITTING = "submitting"
    FINISHED = "finished"


class Mode(str, Enum):
    TRAIN = "train"
    TEST = "test"


@dataclass(frozen=True, slots=True)
class ModeSelection:
    phase: ClassVar[Phase] = Phase.MODE_SELECTION


@dataclass(frozen=True, slots=True)
class Running:
    phase: ClassVar[Phase] = Phase.RUNNING

    mode: Mode
    started_at: str
    elapsed_s: int = 0
    answers: Mapping[str, str] = field(default_factory=dict)
    focus: int = 0
    overtime: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class Submitting:
    phase: ClassVar[Phase] = Phase.SUBMITTING

    mode: Mode
    started_at: str
    elapsed_s: int
    answers: Mapping[str, str]
    submission: AttemptSubmission
    auto: bool = False


@dataclass(frozen=True, slots=True)
class Finished:
    phase: ClassVar[Phase] = Phase.FINISHED

    mode: Mode
    result: AttemptResult
    auto: bool = False


AttemptState = ModeSelection | Running | Submitting | Finished


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _try_parse_int(text: str | None) -> int | None:
    if text is None:
        return None
    s = text.strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def parse_answers(questions: Sequence[Question], raw: Mapping[str, str]) -> dict[str, int | None]:
    """Typed text -> AnswerMap. Every question id is present; blanks are None."""

    return {q.id: _try_parse_int(raw.get(q.id)) for q in questions}


class AttemptSession:
    def __init__(
        self,
        *,
        task_id: int,
        student_id: int,
        questions: Sequence[Question],
        time_limit_s: int,
        submitter: Submitter,
        ticker: TickScheduler,
        mode: Mode | None = None,
        now_iso: Callable[[], str] = _utc_now_iso,
    ) -> None:
        if not questions:
            raise ValidationError("an attempt needs at least one question")
        if time_limit_s < 1:
            raise ValidationError("time_limit_s must be >= 1")

        self._task_id = task_id
        self._student_id = student_id
        self._questions: tuple[Question, ...] = tuple(questions)
        self._index_by_id = {q.id: i for i, q in enumerate(self._questions)}
        self._time_limit_s = int(time_limit_s)
        self._submitter = submitter
        self._ticker = ticker
        self._fixed_mode = mode
        self._now_iso = now_iso
        self._listeners: list[Listener] = []
        self._closed = False

        self._state: AttemptState = ModeSelection()
        if mode is not None:
            self.choose_mode(mode)

    # -- read side ---------------------------------------------------------

    @property
    def state(self) -> AttemptState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def time_limit_s(self) -> int:
        return self._time_limit_s

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def submitting(self) -> bool:
        return isinstance(self._state, Submitting)

    def time_remaining_s(self) -> int | None:
        """Countdown value in test mode; None in train mode or outside a run."""

        s = self._state
        if isinstance(s, (Running, Submitting)) and s.mode is Mode.TEST:
            return max(0, self._time_limit_s - s.elapsed_s)
        return None

    def elapsed_s(self) -> int:
        s = self._state
        if isinstance(s, (Running, Submitting)):
            return s.elapsed_s
        if isinstance(s, Finished):
            return s.result.time_taken
        return 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- transitions -------------------------------------------------------

    def choose_mode(self, mode: Mode | str) -> None:
        if self._closed or not isinstance(self._state, ModeSelection):
            return
        try:
            chosen = Mode(mode)
        except ValueError:
            raise ValidationError(f"unknown mode: {mode!r}") from None

        started_at = self._now_iso()
        self._set_state(Running(mode=chosen, started_at=started_at))
        self._ticker.start(self.tick)
        log.dev(
            f"Attempt started - task={self._task_id}, student={self._student_id}, "
            f"mode={chosen.value}, questions={len(self._questions)}"
        )

    def set_answer(self, question_id: str, text: str) -> None:
        s = self._state
        if not isinstance(s, Running):
            return
        if question_id not in self._index_by_id:
            raise ValidationError(f"unknown question id: {question_id!r}")
        answers = dict(s.answers)
        answers[question_id] = text
        self._set_state(replace(s, answers=answers))

    def focus(self, index: int) -> None:
        s = self._state
        if not isinstance(s, Running):
            return
        index = max(0, min(len(self._questions) - 1, int(index)))
        if index != s.focus:
            self._set_state(replace(s, focus=index))

    def press_enter(self, index: int | None = None) -> None:
        """Advance focus past ``index``; past the last field this submits."""

        s = self._state
        if not isinstance(s, Running):
            return
        current = s.focus if index is None else int(index)
        if current + 1 < len(self._questions):
            self.focus(current + 1)
        else:
            self.submit()

    def tick(self) -> None:
        s = self._state
        if self._closed or not isinstance(s, Running):
            return

        elapsed = s.elapsed_s + 1
        if s.mode is Mode.TEST:
            if elapsed >= self._time_limit_s:
                self._set_state(replace(s, elapsed_s=self._time_limit_s))
                self.submit(auto=True)
                return
            self._set_state(replace(s, elapsed_s=elapsed))
            return

        self._set_state(replace(s, elapsed_s=elapsed, overtime=elapsed >= self._time_limit_s))

    def begin_submit(self, *, auto: bool = False) -> AttemptSubmission | None:
        """RUNNING -> SUBMITTING. Returns None if a submission is already out."""

        s = self._state
        if self._closed or not isinstance(s, Running):
            return None

        self._ticker.cancel()
        if s.mode is Mode.TEST:
            remaining = max(0, self._time_limit_s - s.elapsed_s)
            time_taken = self._time_limit_s - remaining
        else:
            time_taken = s.elapsed_s

        submission = AttemptSubmission(
            task_id=self._task_id,
            student_id=self._student_id,
            started_at=s.started_at,
            time_taken=time_taken,
            answers=parse_answers(self._questions, s.answers),
        )
        self._set_state(
            Submitting(
                mode=s.mode,
                started_at=s.started_at,
                elapsed_s=s.elapsed_s,
                answers=s.answers,
                submission=submission,
                auto=auto,
            )
        )
        return submission

    def complete_submit(self, result: AttemptResult) -> None:
        s = self._state
        if not isinstance(s, Submitting):
            return
        self._set_state(Finished(mode=s.mode, result=result, auto=s.auto))

    def fail_submit(self, error: BaseException | str) -> None:
        """SUBMITTING -> RUNNING with answers kept so the user can retry."""

        s = self._state
        if not isinstance(s, Submitting):
            return
        message = str(error) or error.__class__.__name__
        log.prd(f"Attempt submit failed - task={self._task_id}, student={self._student_id}: {message}")

        self._set_state(
            Running(
                mode=s.mode,
                started_at=s.started_at,
                elapsed_s=s.elapsed_s,
                answers=s.answers,
                focus=len(self._questions) - 1,
                overtime=s.mode is Mode.TRAIN and s.elapsed_s >= self._time_limit_s,
                error=f"Could not save your answers ({message}). Try submitting again.",
            )
        )
        # An expired test stays frozen at the limit; only a manual retry submits.
        if self._closed or (s.mode is Mode.TEST and s.elapsed_s >= self._time_limit_s):
            return
        self._ticker.start(self.tick)

    def submit(self, *, auto: bool = False) -> AttemptResult | None:
        submission = self.begin_submit(auto=auto)
        if submission is None:
            return None
        try:
            result = self._submitter(submission)
        except Exception as exc:
            self.fail_submit(exc)
            return None
        self.complete_submit(result)
        return result

    def retry(self) -> None:
        """FINISHED -> fresh MODE_SELECTION over the same frozen questions."""

        if self._closed or not isinstance(self._state, Finished):
            return
        self._set_state(ModeSelection())
        if self._fixed_mode is not None:
            self.choose_mode(self._fixed_mode)

    def close(self) -> None:
        """Leave the attempt. Stops the ticker on every path out."""

        self._ticker.cancel()
        self._closed = True

    # -- internals ---------------------------------------------------------

    def _set_state(self, state: AttemptState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)
