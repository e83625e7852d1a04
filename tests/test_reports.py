from __future__ import annotations

import pytest

from math_coach.attempts import submit_attempt
from math_coach.errors import NotFoundError
from math_coach.persistence import Store
from math_coach.question_engine import GradeThresholds, Question
from math_coach.reports import pct, student_report
from math_coach.results import AttemptSubmission
from math_coach.seed import seed_demo_profiles
from math_coach.tasks import NewTask, create_task, deactivate_task

QUESTIONS = [Question(id=f"q{i}", operand1=i, operand2=2, answer=2 * i) for i in range(4)]


def _answer(store: Store, task_id: int, student_id: int, correct: int, started_at: str) -> None:
    answers = {q.id: q.answer for q in QUESTIONS[:correct]}
    submit_attempt(
        store,
        AttemptSubmission(task_id=task_id, student_id=student_id, started_at=started_at, time_taken=40, answers=answers),
    )


def test_trend_is_chronological_per_task_and_survives_deactivation() -> None:
    store = Store.open(":memory:")
    coach, ella, _ = seed_demo_profiles(store)
    (task,) = create_task(
        store,
        NewTask(
            title="Twos",
            creator_id=coach.id,
            time_limit_s=60,
            thresholds=GradeThresholds(2, 3, 4),
            questions=QUESTIONS,
            assignee_ids=[ella.id],
        ),
    )
    _answer(store, task.id, ella.id, 4, "2026-04-03T10:00:00Z")
    _answer(store, task.id, ella.id, 1, "2026-04-01T10:00:00Z")
    _answer(store, task.id, ella.id, 3, "2026-04-02T10:00:00Z")
    deactivate_task(store, task.id, coach.id)

    report = student_report(store, ella.id)
    (t,) = report.tasks
    assert t.title == "Twos"
    assert [p.date for p in t.points] == ["2026-04-01", "2026-04-02", "2026-04-03"]
    assert [p.score_pct for p in t.points] == [25, 75, 100]
    assert [p.attempt for p in t.points] == [1, 2, 3]
    assert (t.pass_pct, t.good_pct, t.master_pct) == (50, 75, 100)
    assert t.best_pct == 100
    assert t.latest_grade == "master"
    assert report.attempt_count == 3
    store.close()


def test_report_for_a_task_without_attempts_is_empty() -> None:
    store = Store.open(":memory:")
    _coach, ella, _ = seed_demo_profiles(store)
    (own,) = create_task(
        store,
        NewTask(title="Mine", creator_id=ella.id, time_limit_s=60, thresholds=GradeThresholds(1, 2, 4), questions=QUESTIONS),
    )

    report = student_report(store, ella.id, task_id=own.id)
    (t,) = report.tasks
    assert t.attempts == 0
    assert t.best_pct is None
    assert t.latest_grade is None
    store.close()


def test_report_requires_a_student() -> None:
    store = Store.open(":memory:")
    coach, _, _ = seed_demo_profiles(store)
    with pytest.raises(NotFoundError):
        student_report(store, coach.id)
    with pytest.raises(NotFoundError):
        student_report(store, 404)
    store.close()


def test_pct_rounds_and_guards_zero() -> None:
    assert pct(1, 3) == 33
    assert pct(2, 3) == 67
    assert pct(5, 0) == 0
