from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DB_PATH_ENV = "MATHCOACH_DB_PATH"
ENV_NAME_ENV = "MATHCOACH_ENV"
SEED_ON_START_ENV = "MATHCOACH_SEED_ON_START"

LAYOUTS = ("vertical", "horizontal")


def _round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


@dataclass(frozen=True, slots=True)
class TaskDefaults:
    question_count_presets: tuple[int, ...] = (30, 60, 90)
    question_count: int = 60
    min_custom_count: int = 20
    max_custom_count: int = 100
    time_limit_s: int = 600
    min_time_limit_s: int = 60
    max_time_limit_s: int = 1800
    time_limit_step_s: int = 30
    layout: str = "vertical"
    grid_size: int = 10
    # Typed answers are capped at this many digits.
    max_answer_digits: int = 3

    def thresholds_for(self, count: int) -> tuple[int, int, int]:
        """Default (pass, good, master) thresholds for ``count`` questions."""

        return (_round_half_up(count * 0.75), _round_half_up(count * 0.9), count)


@dataclass(frozen=True, slots=True)
class AppConfig:
    db_path: Path
    environment: str = "production"
    seed_on_start: bool = True
    task_defaults: TaskDefaults = TaskDefaults()


def default_db_path() -> Path:
    return Path.home() / ".math_coach" / "math_coach.db"


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if environ is None else environ

    explicit = env.get(DB_PATH_ENV, "").strip()
    db_path = Path(explicit).expanduser() if explicit else default_db_path()

    environment = env.get(ENV_NAME_ENV, "").strip().lower() or "production"
    seed_on_start = env.get(SEED_ON_START_ENV, "1").strip() != "0"

    return AppConfig(db_path=db_path, environment=environment, seed_on_start=seed_on_start)
