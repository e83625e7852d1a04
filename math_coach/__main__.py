from __future__ import annotations

from .app import run


def main() -> int:
    """Entry point for ``python -m math_coach``."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
