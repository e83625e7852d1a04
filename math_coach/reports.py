"""Trend reports over a student's completed attempts."""

from __future__ import annotations

from dataclasses import dataclass, field

from . import log
from .errors import NotFoundError
from .persistence import ROLE_STUDENT, AttemptRecord, ProfileRecord, Store, TaskRecord


@dataclass(frozen=True, slots=True)
class TrendPoint:
    attempt: int  # 1-based, chronological
    date: str  # YYYY-MM-DD
    score: int
    total: int
    score_pct: int
    grade: str
    time_taken_s: int


@dataclass(frozen=True, slots=True)
class TaskReport:
    task_id: int
    title: str
    total: int
    pass_pct: int
    good_pct: int
    master_pct: int
    points: list[TrendPoint] = field(default_factory=list)

    @property
    def attempts(self) -> int:
        return len(self.points)

    @property
    def best_pct(self) -> int | None:
        return max((p.score_pct for p in self.points), default=None)

    @property
    def latest_grade(self) -> str | None:
        return self.points[-1].grade if self.points else None


@dataclass(frozen=True, slots=True)
class StudentReport:
    student: ProfileRecord
    tasks: list[TaskReport] = field(default_factory=list)

    @property
    def attempt_count(self) -> int:
        return sum(t.attempts for t in self.tasks)


def pct(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(round(part * 100 / total))


def _trend(task: TaskRecord, attempts: list[AttemptRecord]) -> TaskReport:
    total = task.question_count
    points = [
        TrendPoint(
            attempt=i,
            date=a.started_at[:10],
            score=a.score,
            total=total,
            score_pct=pct(a.score, total),
            grade=a.grade,
            time_taken_s=a.time_taken_s,
        )
        for i, a in enumerate(attempts, start=1)
    ]
    return TaskReport(
        task_id=task.id,
        title=task.title,
        total=total,
        pass_pct=pct(task.thresholds.pass_score, total),
        good_pct=pct(task.thresholds.good_score, total),
        master_pct=pct(task.thresholds.master_score, total),
        points=points,
    )


def student_report(store: Store, student_id: int, *, task_id: int | None = None) -> StudentReport:
    """Per-task score trends for one student.

    Covers every task the student can see, including deactivated ones, so
    history survives deactivation. ``task_id`` narrows it to a single task.
    """

    student = store.get_profile(student_id)
    if student is None or student.role != ROLE_STUDENT:
        raise NotFoundError(f"student {student_id} not found")

    tasks = store.tasks_for_student(student_id, active_only=False)
    if task_id is not None:
        tasks = [t for t in tasks if t.id == task_id]

    attempts = store.list_attempts(student_id, task_id=task_id)
    by_task: dict[int, list[AttemptRecord]] = {}
    for a in attempts:
        by_task.setdefault(a.task_id, []).append(a)

    log.dev(f"Report loaded - student={student_id}, attempts={len(attempts)}")
    return StudentReport(student=student, tasks=[_trend(t, by_task.get(t.id, [])) for t in tasks])
