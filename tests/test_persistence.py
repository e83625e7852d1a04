from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from math_coach.persistence import ROLE_COACH, ROLE_STUDENT, SCHEMA_VERSION, NewTaskRow, Store
from math_coach.question_engine import GradeThresholds, SeededRng, generate_questions, grade_attempt
from math_coach.results import AttemptSubmission, build_breakdown


def _row(creator_id: int, assigned_to_id: int | None, *, title: str = "Sixes") -> NewTaskRow:
    return NewTaskRow(
        title=title,
        creator_id=creator_id,
        assigned_to_id=assigned_to_id,
        time_limit_s=300,
        thresholds=GradeThresholds(3, 4, 5),
        questions=generate_questions([(6, 1), (6, 2), (6, 3)], 5, rng=SeededRng(8)),
        config={"layout": "horizontal", "question_count": 5},
    )


def test_open_creates_schema_and_is_reopenable(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "db.sqlite"
    with Store.open(path) as store:
        store.create_profile(name="Coach", role=ROLE_COACH)

    conn = sqlite3.connect(path)
    try:
        assert conn.execute("PRAGMA user_version;").fetchone()[0] == SCHEMA_VERSION
    finally:
        conn.close()

    with Store.open(path) as store:
        assert store.count_profiles() == 1


def test_profiles_sorted_coach_first() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Zed", role=ROLE_COACH)
        store.create_profile(name="Nathan", role=ROLE_STUDENT, coach_id=coach.id)
        store.create_profile(name="Ella", role=ROLE_STUDENT, coach_id=coach.id)

        assert [p.name for p in store.list_profiles()] == ["Zed", "Ella", "Nathan"]
        assert [p.name for p in store.list_students(coach.id)] == ["Ella", "Nathan"]
        assert store.get_profile(999) is None
        assert coach.is_coach


def test_role_is_constrained() -> None:
    with Store.open(":memory:") as store:
        with pytest.raises(sqlite3.IntegrityError):
            store.create_profile(name="X", role="ADMIN")


def test_task_round_trip_keeps_question_order_and_config() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Coach", role=ROLE_COACH)
        row = _row(coach.id, None)
        (task,) = store.insert_tasks([row])

        loaded = store.find_task(task.id)
        assert loaded is not None
        assert loaded.questions == list(row.questions)
        assert loaded.layout == "horizontal"
        assert loaded.thresholds == GradeThresholds(3, 4, 5)
        assert loaded.is_active


def test_tasks_for_student_visibility_and_active_filter() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Coach", role=ROLE_COACH)
        ella = store.create_profile(name="Ella", role=ROLE_STUDENT, coach_id=coach.id)
        nathan = store.create_profile(name="Nathan", role=ROLE_STUDENT, coach_id=coach.id)

        assigned, own, other = store.insert_tasks(
            [_row(coach.id, ella.id, title="A"), _row(ella.id, None, title="B"), _row(coach.id, nathan.id, title="C")]
        )

        ids = {t.id for t in store.tasks_for_student(ella.id)}
        assert ids == {assigned.id, own.id}
        assert [t.id for t in store.tasks_for_student(ella.id)] == [own.id, assigned.id]

        store.set_task_active(own.id, False)
        assert [t.id for t in store.tasks_for_student(ella.id)] == [assigned.id]
        assert {t.id for t in store.tasks_for_student(ella.id, active_only=False)} == {assigned.id, own.id}
        assert other.visible_to(nathan.id) and not other.visible_to(ella.id)


def test_attempt_and_answers_written_together() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Coach", role=ROLE_COACH)
        ella = store.create_profile(name="Ella", role=ROLE_STUDENT, coach_id=coach.id)
        (task,) = store.insert_tasks([_row(coach.id, ella.id)])

        answers: dict[str, int | None] = {q.id: q.answer for q in task.questions[:3]}
        submission = AttemptSubmission(
            task_id=task.id, student_id=ella.id, started_at="2026-03-01T10:00:00Z", time_taken=42, answers=answers
        )
        graded = grade_attempt(task.questions, answers, task.thresholds)
        attempt_id = store.insert_attempt(
            submission=submission, graded=graded, breakdown=build_breakdown(task.questions, answers)
        )

        (a,) = store.list_attempts(ella.id)
        assert a.id == attempt_id
        assert (a.score, a.grade, a.time_taken_s) == (3, "pass", 42)
        assert a.completed_at is not None
        rows = store.attempt_answers(attempt_id)
        assert [r[0] for r in rows] == list(range(5))
        assert [r[2] for r in rows] == [True, True, True, False, False]


def test_failed_answer_insert_rolls_back_attempt_row() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Coach", role=ROLE_COACH)
        ella = store.create_profile(name="Ella", role=ROLE_STUDENT, coach_id=coach.id)
        (task,) = store.insert_tasks([_row(coach.id, ella.id)])
        submission = AttemptSubmission(task_id=task.id, student_id=ella.id, started_at="2026-03-01T10:00:00Z", time_taken=1)
        graded = grade_attempt(task.questions, {}, task.thresholds)
        breakdown = build_breakdown(task.questions, {})
        store._conn.execute(
            "CREATE TRIGGER no_answers BEFORE INSERT ON attempt_answer BEGIN SELECT RAISE(ABORT, 'boom'); END;"
        )

        with pytest.raises(sqlite3.DatabaseError):
            store.insert_attempt(submission=submission, graded=graded, breakdown=breakdown)
        assert store.list_attempts(ella.id) == []


def test_create_profile_returns_the_stored_record() -> None:
    with Store.open(":memory:") as store:
        coach = store.create_profile(name="Coach", role=ROLE_COACH)
        ella = store.create_profile(name="Ella", role=ROLE_STUDENT, coach_id=coach.id)

        assert store.get_profile(coach.id) == coach
        assert store.get_profile(ella.id) == ella
        assert ella.coach_id == coach.id
