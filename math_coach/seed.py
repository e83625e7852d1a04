from __future__ import annotations

from . import log
from .persistence import ROLE_COACH, ROLE_STUDENT, ProfileRecord, Store

DEMO_STUDENTS = ("Ella", "Nathan")


def is_seeded(store: Store) -> bool:
    return store.count_profiles() > 0


def seed_demo_profiles(store: Store) -> list[ProfileRecord]:
    """One coach and the demo students under it. No-op on a seeded store."""

    if is_seeded(store):
        return []

    coach = store.create_profile(name="Coach", role=ROLE_COACH)
    log.dev(f"Created coach - id={coach.id}")
    created = [coach]
    for name in DEMO_STUDENTS:
        student = store.create_profile(name=name, role=ROLE_STUDENT, coach_id=coach.id)
        log.dev(f"Created student - id={student.id}, name={name}")
        created.append(student)

    log.prd(f"Seed complete - 1 coach, {len(DEMO_STUDENTS)} students created")
    return created
