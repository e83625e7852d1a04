from __future__ import annotations

import json
import sqlite3
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import log
from .question_engine import GradeResult, GradeThresholds, Question, questions_from_json, questions_to_json
from .results import AttemptSubmission, BreakdownRow

SCHEMA_VERSION = 1

ROLE_COACH = "COACH"
ROLE_STUDENT = "STUDENT"
ROLES = (ROLE_COACH, ROLE_STUDENT)


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS profile (
                id INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('COACH', 'STUDENT')),
                coach_id INTEGER REFERENCES profile(id),
                created_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS task (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                creator_id INTEGER NOT NULL REFERENCES profile(id),
                assigned_to_id INTEGER REFERENCES profile(id),
                task_type TEXT NOT NULL DEFAULT 'multiplication',
                time_limit_s INTEGER NOT NULL,
                pass_score INTEGER NOT NULL,
                good_score INTEGER NOT NULL,
                master_score INTEGER NOT NULL,
                questions TEXT NOT NULL,
                config TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS attempt (
                id INTEGER PRIMARY KEY,
                task_id INTEGER NOT NULL REFERENCES task(id) ON DELETE CASCADE,
                student_id INTEGER NOT NULL REFERENCES profile(id),
                started_at_utc TEXT NOT NULL,
                completed_at_utc TEXT,
                time_taken_s INTEGER NOT NULL,
                score INTEGER NOT NULL,
                grade TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS attempt_answer (
                id INTEGER PRIMARY KEY,
                attempt_id INTEGER NOT NULL REFERENCES attempt(id) ON DELETE CASCADE,
                question_index INTEGER NOT NULL,
                user_answer INTEGER,
                is_correct INTEGER NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_task_assigned ON task(assigned_to_id, is_active);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_attempt_student ON attempt(student_id, started_at_utc);")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_attempt_answer_attempt ON attempt_answer(attempt_id, question_index);"
        )
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


@dataclass(frozen=True, slots=True)
class ProfileRecord:
    id: int
    name: str
    role: str
    coach_id: int | None
    created_at: str

    @property
    def is_coach(self) -> bool:
        return self.role == ROLE_COACH


@dataclass(frozen=True, slots=True)
class TaskRecord:
    id: int
    title: str
    creator_id: int
    assigned_to_id: int | None
    time_limit_s: int
    thresholds: GradeThresholds
    questions: list[Question]
    config: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True
    created_at: str = ""

    @property
    def layout(self) -> str:
        return str(self.config.get("layout", "vertical"))

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def visible_to(self, student_id: int) -> bool:
        """Assigned to the student, or an unassigned task they created."""

        if self.assigned_to_id is not None:
            return self.assigned_to_id == student_id
        return self.creator_id == student_id


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    id: int
    task_id: int
    student_id: int
    started_at: str
    completed_at: str | None
    time_taken_s: int
    score: int
    grade: str


@dataclass(frozen=True, slots=True)
class NewTaskRow:
    title: str
    creator_id: int
    assigned_to_id: int | None
    time_limit_s: int
    thresholds: GradeThresholds
    questions: Sequence[Question]
    config: dict[str, Any]


def _profile(row: sqlite3.Row) -> ProfileRecord:
    return ProfileRecord(
        id=int(row["id"]),
        name=str(row["name"]),
        role=str(row["role"]),
        coach_id=None if row["coach_id"] is None else int(row["coach_id"]),
        created_at=str(row["created_at_utc"]),
    )


def _task(row: sqlite3.Row) -> TaskRecord:
    return TaskRecord(
        id=int(row["id"]),
        title=str(row["title"]),
        creator_id=int(row["creator_id"]),
        assigned_to_id=None if row["assigned_to_id"] is None else int(row["assigned_to_id"]),
        time_limit_s=int(row["time_limit_s"]),
        thresholds=GradeThresholds(
            pass_score=int(row["pass_score"]),
            good_score=int(row["good_score"]),
            master_score=int(row["master_score"]),
        ),
        questions=questions_from_json(row["questions"]),
        config=json.loads(row["config"]),
        is_active=bool(row["is_active"]),
        created_at=str(row["created_at_utc"]),
    )


def _attempt(row: sqlite3.Row) -> AttemptRecord:
    return AttemptRecord(
        id=int(row["id"]),
        task_id=int(row["task_id"]),
        student_id=int(row["student_id"]),
        started_at=str(row["started_at_utc"]),
        completed_at=None if row["completed_at_utc"] is None else str(row["completed_at_utc"]),
        time_taken_s=int(row["time_taken_s"]),
        score=int(row["score"]),
        grade=str(row["grade"]),
    )


class Store:
    """Explicitly opened sqlite handle.

    Open it once per process (``Store.open``), pass it to whatever needs it
    and close it when done; it is also a context manager.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: Path | str) -> Store:
        target = str(path)
        if target != ":memory:":
            Path(target).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(target)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        if target != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        _migrate(conn)
        log.dev(f"[db] Opened SQLite database - path={target}")
        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- profiles ----------------------------------------------------------

    def create_profile(self, *, name: str, role: str, coach_id: int | None = None) -> ProfileRecord:
        created_at = _utc_now_iso()
        with self._conn:
            cur = self._conn.execute(
                "INSERT INTO profile(name, role, coach_id, created_at_utc) VALUES (?, ?, ?, ?)",
                (name, role, coach_id, created_at),
            )
        return ProfileRecord(id=int(cur.lastrowid), name=name, role=role, coach_id=coach_id, created_at=created_at)

    def get_profile(self, profile_id: int) -> ProfileRecord | None:
        row = self._conn.execute("SELECT * FROM profile WHERE id = ?", (profile_id,)).fetchone()
        return None if row is None else _profile(row)

    def list_profiles(self) -> list[ProfileRecord]:
        # COACH sorts before STUDENT alphabetically.
        rows = self._conn.execute("SELECT * FROM profile ORDER BY role ASC, name ASC").fetchall()
        return [_profile(r) for r in rows]

    def list_students(self, coach_id: int) -> list[ProfileRecord]:
        rows = self._conn.execute(
            "SELECT * FROM profile WHERE role = ? AND coach_id = ? ORDER BY name ASC",
            (ROLE_STUDENT, coach_id),
        ).fetchall()
        return [_profile(r) for r in rows]

    def count_profiles(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM profile").fetchone()[0])

    # -- tasks -------------------------------------------------------------

    def insert_tasks(self, rows: Iterable[NewTaskRow]) -> list[TaskRecord]:
        """Insert every row in one transaction; all or nothing."""

        now = _utc_now_iso()
        ids: list[int] = []
        with self._conn:
            for r in rows:
                cur = self._conn.execute(
                    """
                    INSERT INTO task(
                        title, creator_id, assigned_to_id, task_type, time_limit_s,
                        pass_score, good_score, master_score, questions, config,
                        is_active, created_at_utc
                    )
                    VALUES (?, ?, ?, 'multiplication', ?, ?, ?, ?, ?, ?, 1, ?)
                    """,
                    (
                        r.title,
                        r.creator_id,
                        r.assigned_to_id,
                        int(r.time_limit_s),
                        int(r.thresholds.pass_score),
                        int(r.thresholds.good_score),
                        int(r.thresholds.master_score),
                        questions_to_json(r.questions),
                        json.dumps(r.config),
                        now,
                    ),
                )
                ids.append(int(cur.lastrowid))
        out = [self.find_task(i) for i in ids]
        return [t for t in out if t is not None]

    def find_task(self, task_id: int) -> TaskRecord | None:
        row = self._conn.execute("SELECT * FROM task WHERE id = ?", (task_id,)).fetchone()
        return None if row is None else _task(row)

    def tasks_for_student(self, student_id: int, *, active_only: bool = True) -> list[TaskRecord]:
        sql = """
            SELECT * FROM task
            WHERE (assigned_to_id = ? OR (creator_id = ? AND assigned_to_id IS NULL))
        """
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at_utc DESC, id DESC"
        rows = self._conn.execute(sql, (student_id, student_id)).fetchall()
        return [_task(r) for r in rows]

    def set_task_active(self, task_id: int, active: bool) -> None:
        with self._conn:
            self._conn.execute("UPDATE task SET is_active = ? WHERE id = ?", (1 if active else 0, task_id))

    # -- attempts ----------------------------------------------------------

    def insert_attempt(
        self,
        *,
        submission: AttemptSubmission,
        graded: GradeResult,
        breakdown: Sequence[BreakdownRow],
    ) -> int:
        """Attempt row and its per-question answers in a single transaction."""

        with self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO attempt(
                    task_id, student_id, started_at_utc, completed_at_utc,
                    time_taken_s, score, grade
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(submission.task_id),
                    int(submission.student_id),
                    str(submission.started_at),
                    _utc_now_iso(),
                    int(submission.time_taken),
                    int(graded.score),
                    graded.grade.value,
                ),
            )
            attempt_id = int(cur.lastrowid)
            self._conn.executemany(
                """
                INSERT INTO attempt_answer(attempt_id, question_index, user_answer, is_correct)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (attempt_id, b.question_index, b.user_answer, 1 if b.is_correct else 0)
                    for b in breakdown
                ],
            )
        return attempt_id

    def list_attempts(self, student_id: int, *, task_id: int | None = None) -> list[AttemptRecord]:
        sql = "SELECT * FROM attempt WHERE student_id = ? AND completed_at_utc IS NOT NULL"
        params: list[Any] = [student_id]
        if task_id is not None:
            sql += " AND task_id = ?"
            params.append(task_id)
        sql += " ORDER BY started_at_utc ASC, id ASC"
        rows = self._conn.execute(sql, params).fetchall()
        return [_attempt(r) for r in rows]

    def attempt_answers(self, attempt_id: int) -> list[tuple[int, int | None, bool]]:
        rows = self._conn.execute(
            """
            SELECT question_index, user_answer, is_correct FROM attempt_answer
            WHERE attempt_id = ? ORDER BY question_index ASC
            """,
            (attempt_id,),
        ).fetchall()
        return [
            (int(r["question_index"]), None if r["user_answer"] is None else int(r["user_answer"]), bool(r["is_correct"]))
            for r in rows
        ]
