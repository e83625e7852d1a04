from __future__ import annotations

from pathlib import Path

from math_coach.config import AppConfig, TaskDefaults, default_db_path, load_config


def test_defaults_without_environment() -> None:
    cfg = load_config({})
    assert cfg.db_path == default_db_path()
    assert cfg.environment == "production"
    assert cfg.seed_on_start is True
    assert cfg.task_defaults == TaskDefaults()


def test_environment_overrides(tmp_path: Path) -> None:
    cfg = load_config(
        {
            "MATHCOACH_DB_PATH": str(tmp_path / "x.db"),
            "MATHCOACH_ENV": "Development",
            "MATHCOACH_SEED_ON_START": "0",
        }
    )
    assert cfg == AppConfig(db_path=tmp_path / "x.db", environment="development", seed_on_start=False)


def test_default_thresholds_scale_with_count() -> None:
    d = TaskDefaults()
    assert d.thresholds_for(60) == (45, 54, 60)
    assert d.thresholds_for(30) == (23, 27, 30)
    assert d.thresholds_for(90) == (68, 81, 90)
    assert d.question_count in d.question_count_presets


def test_default_thresholds_round_halves_up() -> None:
    d = TaskDefaults()
    assert d.thresholds_for(22) == (17, 20, 22)
    assert d.thresholds_for(70) == (53, 63, 70)
    assert d.thresholds_for(5) == (4, 5, 5)
