"""Three-tier line logger.

Tiers, lowest first:

* ``DEV``  - verbose debug output, shown only when the active level is DEV.
* ``TEST`` - test-execution notes, shown when the active level is DEV or TEST.
* ``PRD``  - errors and key business events, always shown.

The active level is read from ``LOG_LEVEL`` on every call. When it is unset
or unknown, ``MATHCOACH_ENV=development`` selects DEV and anything else PRD.
Lines look like ``[2026-01-31 14:05:09] [PRD] Task created - id=3`` and PRD
lines go to stderr so they are never lost behind stdout buffering.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

DEV = 15
TEST = 25
PRD = 45

LEVELS: dict[str, int] = {"DEV": DEV, "TEST": TEST, "PRD": PRD}

LOGGER_NAME = "math_coach"
LINE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

for _name, _level in LEVELS.items():
    logging.addLevelName(_level, _name)


def active_level(environ: Mapping[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    raw = env.get("LOG_LEVEL", "").strip().upper()
    if raw in LEVELS:
        return LEVELS[raw]
    if env.get("MATHCOACH_ENV", "").strip().lower() == "development":
        return DEV
    return PRD


class _ConsoleHandler(logging.Handler):
    """Write PRD to stderr and lower tiers to stdout.

    Streams are looked up at emit time so redirected ``sys.stdout`` and
    ``sys.stderr`` (pytest capture, for instance) are honoured.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            stream = sys.stderr if record.levelno >= PRD else sys.stdout
            stream.write(line + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not any(isinstance(h, _ConsoleHandler) for h in logger.handlers):
        handler = _ConsoleHandler()
        handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(active_level())
    return logger


def dev(message: str) -> None:
    get_logger().log(DEV, message)


def test(message: str) -> None:
    get_logger().log(TEST, message)


def prd(message: str) -> None:
    get_logger().log(PRD, message)
