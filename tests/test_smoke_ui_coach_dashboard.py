from __future__ import annotations

import os
from pathlib import Path


def test_ui_smoke_coach_assigns_task_then_deactivates_one(tmp_path: Path) -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from math_coach.app import run
    from math_coach.config import AppConfig
    from math_coach.persistence import Store

    script = {
        # Coach dashboard: Ella, Nathan, Create task, Back
        1: (pygame.K_RETURN, ""),
        2: (pygame.K_UP, ""),
        3: (pygame.K_UP, ""),
        4: (pygame.K_RETURN, ""),
        # Title "Mix" and save; every student is preselected
        5: (pygame.K_m, "M"),
        6: (pygame.K_i, "i"),
        7: (pygame.K_x, "x"),
        8: (pygame.K_F5, ""),
        # Rows: Ella, task, Nathan, task, Create, Back. Cursor stays on row 2.
        9: (pygame.K_DOWN, ""),
        10: (pygame.K_d, "d"),
    }

    def inject(frame: int) -> None:
        if frame in script:
            key, ch = script[frame]
            pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": key, "unicode": ch}))

    db = tmp_path / "coach.db"
    assert run(max_frames=14, event_injector=inject, config=AppConfig(db_path=db)) == 0

    with Store.open(db) as store:
        profiles = {p.name: p for p in store.list_profiles()}
        ella_tasks = store.tasks_for_student(profiles["Ella"].id, active_only=False)
        nathan_tasks = store.tasks_for_student(profiles["Nathan"].id, active_only=False)

        assert [(t.title, t.is_active) for t in ella_tasks] == [("Mix", True)]
        assert [(t.title, t.is_active) for t in nathan_tasks] == [("Mix", False)]
        assert ella_tasks[0].creator_id == profiles["Coach"].id
