from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .question_engine import Grade, GradeResult, Question, is_correct


@dataclass(frozen=True, slots=True)
class AttemptSubmission:
    """What an attempt session hands to the persistence collaborator."""

    task_id: int
    student_id: int
    started_at: str  # ISO-8601 UTC
    time_taken: int  # seconds
    answers: Mapping[str, int | None] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BreakdownRow:
    question_index: int
    operand1: int
    operand2: int
    correct_answer: int
    user_answer: int | None
    is_correct: bool


@dataclass(frozen=True, slots=True)
class AttemptResult:
    """Persisted, graded attempt plus the per-question breakdown.

    Presentation-ready: the results screen renders it directly.
    """

    attempt_id: int
    score: int
    total: int
    grade: Grade
    time_taken: int
    breakdown: list[BreakdownRow]

    @property
    def score_pct(self) -> int:
        return 0 if self.total == 0 else int(round(self.score * 100 / self.total))

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "score": self.score,
            "total": self.total,
            "grade": self.grade.value,
            "time_taken": self.time_taken,
            "breakdown": [
                {
                    "question_index": r.question_index,
                    "operand1": r.operand1,
                    "operand2": r.operand2,
                    "correct_answer": r.correct_answer,
                    "user_answer": r.user_answer,
                    "is_correct": r.is_correct,
                }
                for r in self.breakdown
            ],
        }


def build_breakdown(questions: Sequence[Question], answers: Mapping[str, int | None]) -> list[BreakdownRow]:
    rows: list[BreakdownRow] = []
    for idx, q in enumerate(questions):
        user_answer = answers.get(q.id)
        rows.append(
            BreakdownRow(
                question_index=idx,
                operand1=q.operand1,
                operand2=q.operand2,
                correct_answer=q.answer,
                user_answer=user_answer,
                is_correct=is_correct(q, user_answer),
            )
        )
    return rows


def attempt_result_from_grade(
    *,
    attempt_id: int,
    graded: GradeResult,
    time_taken: int,
    breakdown: list[BreakdownRow],
) -> AttemptResult:
    return AttemptResult(
        attempt_id=int(attempt_id),
        score=int(graded.score),
        total=int(graded.total),
        grade=graded.grade,
        time_taken=int(time_taken),
        breakdown=breakdown,
    )
