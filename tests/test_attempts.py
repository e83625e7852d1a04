from __future__ import annotations

import pytest

from math_coach.attempts import store_submitter, submit_attempt
from math_coach.errors import NotFoundError
from math_coach.persistence import Store
from math_coach.question_engine import Grade, GradeThresholds, Question
from math_coach.results import AttemptSubmission
from math_coach.seed import seed_demo_profiles
from math_coach.tasks import NewTask, create_task

QUESTIONS = [Question(id=f"q{i}", operand1=i, operand2=7, answer=7 * i) for i in range(1, 5)]


def _setup() -> tuple[Store, int, int, int]:
    store = Store.open(":memory:")
    coach, ella, nathan = seed_demo_profiles(store)
    (task,) = create_task(
        store,
        NewTask(
            title="Sevens",
            creator_id=coach.id,
            time_limit_s=120,
            thresholds=GradeThresholds(2, 3, 4),
            questions=QUESTIONS,
            assignee_ids=[ella.id],
        ),
    )
    return store, task.id, ella.id, nathan.id


def test_submit_grades_and_returns_breakdown() -> None:
    store, task_id, ella_id, _ = _setup()
    result = submit_attempt(
        store,
        AttemptSubmission(
            task_id=task_id,
            student_id=ella_id,
            started_at="2026-02-02T08:00:00Z",
            time_taken=75,
            answers={"q1": 7, "q2": 14, "q3": 20},
        ),
    )

    assert (result.score, result.total, result.grade) == (2, 4, Grade.PASS)
    assert result.score_pct == 50
    assert result.time_taken == 75
    assert [b.is_correct for b in result.breakdown] == [True, True, False, False]
    assert result.breakdown[3].user_answer is None
    assert result.to_dict()["grade"] == "pass"

    (stored,) = store.list_attempts(ella_id)
    assert stored.id == result.attempt_id
    store.close()


def test_submit_rejects_tasks_the_student_cannot_see() -> None:
    store, task_id, _, nathan_id = _setup()
    with pytest.raises(NotFoundError):
        submit_attempt(
            store,
            AttemptSubmission(task_id=task_id, student_id=nathan_id, started_at="2026-02-02T08:00:00Z", time_taken=1),
        )
    with pytest.raises(NotFoundError):
        submit_attempt(
            store,
            AttemptSubmission(task_id=999, student_id=nathan_id, started_at="2026-02-02T08:00:00Z", time_taken=1),
        )
    assert store.list_attempts(nathan_id) == []
    store.close()


def test_store_submitter_binds_the_store() -> None:
    store, task_id, ella_id, _ = _setup()
    submit = store_submitter(store)
    answers = {q.id: q.answer for q in QUESTIONS}

    result = submit(
        AttemptSubmission(
            task_id=task_id, student_id=ella_id, started_at="2026-02-02T08:00:00Z", time_taken=30, answers=answers
        )
    )
    assert result.grade is Grade.MASTER
    store.close()
