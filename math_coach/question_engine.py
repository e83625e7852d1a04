"""Question generation and grading for multiplication-fact quizzes.

Everything here is pure apart from the injected random source, so a seeded
``SeededRng`` replays the exact same question sets in tests while production
callers get a fresh seed per call.
"""

from __future__ import annotations

import json
import random
from collections.abc import Mapping, MutableSequence, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, TypeVar

from .errors import ValidationError
from .facts import Fact

T = TypeVar("T")


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int) -> None:
        self._seed = int(seed)
        self._rng = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


def new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


class Grade(str, Enum):
    FAIL = "fail"
    PASS = "pass"
    GOOD = "good"
    MASTER = "master"


@dataclass(frozen=True, slots=True)
class Question:
    id: str
    operand1: int
    operand2: int
    answer: int


@dataclass(frozen=True, slots=True)
class GradeThresholds:
    """Absolute correct-answer counts for each tier."""

    pass_score: int
    good_score: int
    master_score: int

    def validate(self, total: int) -> None:
        if not (0 <= self.pass_score <= self.good_score <= self.master_score <= total):
            raise ValidationError(
                "thresholds must satisfy 0 <= pass <= good <= master <= "
                f"{total} (got {self.pass_score}/{self.good_score}/{self.master_score})"
            )


@dataclass(frozen=True, slots=True)
class GradeResult:
    score: int
    total: int
    grade: Grade


def shuffle_in_place(items: MutableSequence[T], *, rng: RandomSource | None = None) -> MutableSequence[T]:
    """Fisher-Yates shuffle. Returns the same sequence for convenience."""

    r = rng if rng is not None else SeededRng(new_seed())
    for i in range(len(items) - 1, 0, -1):
        j = r.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def reshuffle_questions(questions: Sequence[Question], *, rng: RandomSource | None = None) -> list[Question]:
    """New ordering of the same questions; ``questions`` is left untouched."""

    copy = list(questions)
    shuffle_in_place(copy, rng=rng)
    return copy


def generate_questions(
    facts: Sequence[Fact],
    count: int,
    *,
    rng: RandomSource | None = None,
) -> list[Question]:
    """Draw ``count`` questions from ``facts`` with replacement, then shuffle.

    Sampling with replacement lets a small fact selection fill any count. Ids
    are assigned in draw order before the shuffle, so they say nothing about
    the presented position.
    """

    if len(facts) == 0:
        raise ValidationError("no facts selected")
    if count < 1:
        raise ValidationError("question count must be at least 1")

    r = rng if rng is not None else SeededRng(new_seed())
    questions: list[Question] = []
    for i in range(count):
        a, b = facts[r.randint(0, len(facts) - 1)]
        questions.append(Question(id=f"q{i}", operand1=int(a), operand2=int(b), answer=int(a) * int(b)))

    shuffle_in_place(questions, rng=r)
    return questions


def is_correct(question: Question, answer: int | None) -> bool:
    return answer is not None and answer == question.answer


def grade_attempt(
    questions: Sequence[Question],
    answers: Mapping[str, int | None],
    thresholds: GradeThresholds,
) -> GradeResult:
    """Score an attempt. Missing keys and None count as wrong; nothing raises."""

    score = sum(1 for q in questions if is_correct(q, answers.get(q.id)))

    if score >= thresholds.master_score:
        grade = Grade.MASTER
    elif score >= thresholds.good_score:
        grade = Grade.GOOD
    elif score >= thresholds.pass_score:
        grade = Grade.PASS
    else:
        grade = Grade.FAIL

    return GradeResult(score=score, total=len(questions), grade=grade)


def question_to_dict(q: Question) -> dict[str, Any]:
    return {"id": q.id, "operand1": q.operand1, "operand2": q.operand2, "answer": q.answer}


def question_from_dict(data: Mapping[str, Any]) -> Question:
    a = int(data["operand1"])
    b = int(data["operand2"])
    return Question(id=str(data["id"]), operand1=a, operand2=b, answer=int(data.get("answer", a * b)))


def questions_to_json(questions: Sequence[Question]) -> str:
    return json.dumps([question_to_dict(q) for q in questions])


def questions_from_json(raw: str) -> list[Question]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValidationError("question set must be a JSON list")
    return [question_from_dict(item) for item in data]
