from __future__ import annotations

from collections.abc import Iterator

import pytest

from math_coach.errors import AuthorizationError, NotFoundError, ValidationError
from math_coach.persistence import ProfileRecord, Store
from math_coach.question_engine import GradeThresholds, Question, SeededRng, generate_questions
from math_coach.seed import seed_demo_profiles
from math_coach.tasks import (
    NewTask,
    coach_roster,
    create_task,
    deactivate_task,
    list_student_tasks,
    load_task_for_attempt,
    validate_new_task,
)


@pytest.fixture
def store() -> Iterator[Store]:
    s = Store.open(":memory:")
    seed_demo_profiles(s)
    yield s
    s.close()


def _people(store: Store) -> tuple[ProfileRecord, ProfileRecord, ProfileRecord]:
    coach, ella, nathan = store.list_profiles()
    return coach, ella, nathan


def _task(creator_id: int, *, assignees: tuple[int, ...] = (), title: str = "Nines") -> NewTask:
    return NewTask(
        title=title,
        creator_id=creator_id,
        time_limit_s=600,
        thresholds=GradeThresholds(6, 8, 10),
        questions=generate_questions([(9, 1), (9, 2), (9, 3)], 10, rng=SeededRng(31)),
        assignee_ids=assignees,
        selected_facts=[(9, 1), (9, 2), (9, 3)],
    )


def test_coach_task_creates_independent_copy_per_student(store: Store) -> None:
    coach, ella, nathan = _people(store)
    created = create_task(store, _task(coach.id, assignees=(ella.id, nathan.id, ella.id)))

    assert [t.assigned_to_id for t in created] == [ella.id, nathan.id]
    assert created[0].id != created[1].id
    assert created[0].questions == created[1].questions
    assert created[0].config["selected_facts"] == [[9, 1], [9, 2], [9, 3]]
    assert created[0].config["question_count"] == 10


def test_unassigned_task_belongs_to_creator(store: Store) -> None:
    _coach, ella, nathan = _people(store)
    (own,) = create_task(store, _task(ella.id, title="  My practice  "))

    assert own.assigned_to_id is None
    assert own.title == "My practice"
    assert [t.id for t in list_student_tasks(store, ella.id)] == [own.id]
    assert list_student_tasks(store, nathan.id) == []


def test_validation_rules() -> None:
    ok = _task(1)
    validate_new_task(ok)

    bad = [
        NewTask(title=" ", creator_id=1, time_limit_s=60, thresholds=ok.thresholds, questions=ok.questions),
        NewTask(title="t", creator_id=1, time_limit_s=60, thresholds=GradeThresholds(0, 0, 0), questions=[]),
        NewTask(title="t", creator_id=1, time_limit_s=0, thresholds=ok.thresholds, questions=ok.questions),
        NewTask(title="t", creator_id=1, time_limit_s=60, thresholds=GradeThresholds(9, 8, 10), questions=ok.questions),
        NewTask(
            title="t", creator_id=1, time_limit_s=60, thresholds=ok.thresholds, questions=ok.questions, layout="diagonal"
        ),
        NewTask(
            title="t",
            creator_id=1,
            time_limit_s=60,
            thresholds=GradeThresholds(0, 0, 2),
            questions=[Question("q0", 1, 1, 1), Question("q0", 2, 2, 4)],
        ),
    ]
    for task in bad:
        with pytest.raises(ValidationError):
            validate_new_task(task)


def test_unknown_creator_or_assignee(store: Store) -> None:
    coach, ella, _ = _people(store)
    with pytest.raises(NotFoundError):
        create_task(store, _task(999))
    with pytest.raises(NotFoundError):
        create_task(store, _task(coach.id, assignees=(coach.id,)))
    assert list_student_tasks(store, ella.id) == []


def test_only_creator_can_deactivate(store: Store) -> None:
    coach, ella, _ = _people(store)
    (task,) = create_task(store, _task(coach.id, assignees=(ella.id,)))

    with pytest.raises(AuthorizationError):
        deactivate_task(store, task.id, ella.id)
    with pytest.raises(NotFoundError):
        deactivate_task(store, 12345, coach.id)

    deactivate_task(store, task.id, coach.id)
    assert list_student_tasks(store, ella.id) == []
    with pytest.raises(NotFoundError):
        load_task_for_attempt(store, ella.id, task.id)


def test_load_task_for_attempt_requires_visibility(store: Store) -> None:
    coach, ella, nathan = _people(store)
    (task,) = create_task(store, _task(coach.id, assignees=(ella.id,)))

    assert load_task_for_attempt(store, ella.id, task.id).id == task.id
    with pytest.raises(NotFoundError):
        load_task_for_attempt(store, nathan.id, task.id)
    with pytest.raises(NotFoundError):
        load_task_for_attempt(store, coach.id, task.id)


def test_coach_roster_lists_students_with_active_tasks(store: Store) -> None:
    coach, ella, nathan = _people(store)
    create_task(store, _task(coach.id, assignees=(ella.id,), title="For Ella"))
    create_task(store, _task(nathan.id, title="Nathan's own"))

    roster = coach_roster(store, coach.id)
    assert [e.student.name for e in roster] == ["Ella", "Nathan"]
    assert [t.title for t in roster[0].tasks] == ["For Ella"]
    assert [t.title for t in roster[1].tasks] == ["Nathan's own"]

    with pytest.raises(NotFoundError):
        coach_roster(store, ella.id)
