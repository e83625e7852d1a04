from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from . import log
from .config import LAYOUTS
from .errors import AuthorizationError, NotFoundError, ValidationError
from .facts import Fact
from .persistence import ROLE_STUDENT, NewTaskRow, ProfileRecord, Store, TaskRecord
from .question_engine import GradeThresholds, Question


@dataclass(frozen=True, slots=True)
class NewTask:
    title: str
    creator_id: int
    time_limit_s: int
    thresholds: GradeThresholds
    questions: Sequence[Question]
    assignee_ids: Sequence[int] = ()
    selected_facts: Sequence[Fact] = ()
    layout: str = "vertical"

    def config(self) -> dict[str, Any]:
        return {
            "selected_facts": [[int(a), int(b)] for a, b in self.selected_facts],
            "question_count": len(self.questions),
            "layout": self.layout,
        }


@dataclass(frozen=True, slots=True)
class RosterEntry:
    student: ProfileRecord
    tasks: list[TaskRecord] = field(default_factory=list)


def validate_new_task(task: NewTask) -> None:
    if not task.title.strip():
        raise ValidationError("Task title is required")
    if len(task.questions) == 0:
        raise ValidationError("Task must have at least one question")
    if task.time_limit_s < 1:
        raise ValidationError("time limit must be at least one second")
    if task.layout not in LAYOUTS:
        raise ValidationError(f"unknown layout: {task.layout!r}")
    task.thresholds.validate(len(task.questions))
    ids = [q.id for q in task.questions]
    if len(set(ids)) != len(ids):
        raise ValidationError("question ids must be unique")


def create_task(store: Store, task: NewTask) -> list[TaskRecord]:
    """Persist a task with its frozen question set.

    One independent record is created per assignee, each with its own copy of
    the questions and its own attempt history. With no assignees the creator
    gets a single self-owned record.
    """

    validate_new_task(task)
    creator = store.get_profile(task.creator_id)
    if creator is None:
        raise NotFoundError(f"profile {task.creator_id} not found")
    for student_id in task.assignee_ids:
        student = store.get_profile(student_id)
        if student is None or student.role != ROLE_STUDENT:
            raise NotFoundError(f"student {student_id} not found")

    title = task.title.strip()
    assignees: list[int | None] = list(dict.fromkeys(task.assignee_ids)) or [None]
    rows = [
        NewTaskRow(
            title=title,
            creator_id=task.creator_id,
            assigned_to_id=assigned_to,
            time_limit_s=task.time_limit_s,
            thresholds=task.thresholds,
            questions=list(task.questions),
            config=task.config(),
        )
        for assigned_to in assignees
    ]
    created = store.insert_tasks(rows)
    for t in created:
        assigned = "self" if t.assigned_to_id is None else str(t.assigned_to_id)
        log.prd(
            f"Task created - id={t.id}, creator={t.creator_id}, assignedTo={assigned}, "
            f"questions={t.question_count}"
        )
    return created


def deactivate_task(store: Store, task_id: int, requester_id: int) -> None:
    """Soft-deactivate: hidden from active lists, attempt history kept."""

    task = store.find_task(task_id)
    if task is None:
        raise NotFoundError("Task not found")
    if task.creator_id != requester_id:
        raise AuthorizationError("Only the creator can deactivate a task")
    store.set_task_active(task_id, False)
    log.prd(f"Task deactivated - id={task_id}, by={requester_id}")


def _require_student(store: Store, student_id: int) -> ProfileRecord:
    student = store.get_profile(student_id)
    if student is None or student.role != ROLE_STUDENT:
        raise NotFoundError(f"student {student_id} not found")
    return student


def list_student_tasks(store: Store, student_id: int) -> list[TaskRecord]:
    """Active assigned tasks plus active self-created ones, newest first."""

    _require_student(store, student_id)
    tasks = store.tasks_for_student(student_id)
    log.dev(f"Student dashboard - studentId={student_id}, tasks={len(tasks)}")
    return tasks


def load_task_for_attempt(store: Store, student_id: int, task_id: int) -> TaskRecord:
    _require_student(store, student_id)
    task = store.find_task(task_id)
    if task is None or not task.is_active or not task.visible_to(student_id):
        raise NotFoundError("Task not found")
    return task


def coach_roster(store: Store, coach_id: int) -> list[RosterEntry]:
    coach = store.get_profile(coach_id)
    if coach is None or not coach.is_coach:
        raise NotFoundError(f"coach {coach_id} not found")
    students = store.list_students(coach_id)
    log.dev(f"Coach dashboard loaded - coachId={coach_id}, students={len(students)}")
    return [RosterEntry(student=s, tasks=store.tasks_for_student(s.id)) for s in students]
