from __future__ import annotations

from . import log
from .attempt_session import Submitter
from .errors import NotFoundError
from .persistence import Store
from .question_engine import grade_attempt
from .results import AttemptResult, AttemptSubmission, attempt_result_from_grade, build_breakdown


def submit_attempt(store: Store, submission: AttemptSubmission) -> AttemptResult:
    """Grade and save a completed (or timed-out) attempt.

    The attempt row and every per-question row are written together or not
    at all. Returns the graded result for the results view.
    """

    task = store.find_task(submission.task_id)
    if task is None or not task.visible_to(submission.student_id):
        raise NotFoundError("Task not found")

    graded = grade_attempt(task.questions, submission.answers, task.thresholds)
    breakdown = build_breakdown(task.questions, submission.answers)
    attempt_id = store.insert_attempt(submission=submission, graded=graded, breakdown=breakdown)

    log.prd(
        f"Attempt saved - attemptId={attempt_id}, task={submission.task_id}, "
        f"student={submission.student_id}, score={graded.score}/{graded.total}, grade={graded.grade.value}"
    )
    return attempt_result_from_grade(
        attempt_id=attempt_id,
        graded=graded,
        time_taken=submission.time_taken,
        breakdown=breakdown,
    )


def store_submitter(store: Store) -> Submitter:
    """Bind ``submit_attempt`` to a store for an ``AttemptSession``."""

    def submit(submission: AttemptSubmission) -> AttemptResult:
        return submit_attempt(store, submission)

    return submit
