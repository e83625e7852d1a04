"""Multiplication fact grid.

A fact is an ordered operand pair ``(a, b)``. The grid is what the task
creation screen edits: rows are the first operand, columns the second.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

Fact = tuple[int, int]

DEFAULT_GRID_SIZE = 10


def matches_fact(pair: Fact, facts: Iterable[Fact]) -> bool:
    """True if ``pair`` equals some fact in ``facts`` in either operand order."""

    a, b = pair
    return any((a, b) == (x, y) or (b, a) == (x, y) for x, y in facts)


class FactGrid:
    """Selectable ``size`` x ``size`` grid of facts (operands 0..size-1)."""

    def __init__(self, size: int = DEFAULT_GRID_SIZE, *, selected: Iterable[Fact] = ()) -> None:
        if size < 1:
            raise ValueError("size must be >= 1")
        self._size = int(size)
        self._selected: set[Fact] = set()
        for a, b in selected:
            self._check(a, b)
            self._selected.add((int(a), int(b)))

    @classmethod
    def full(cls, size: int = DEFAULT_GRID_SIZE) -> FactGrid:
        grid = cls(size)
        grid.select_all()
        return grid

    @property
    def size(self) -> int:
        return self._size

    @property
    def factors(self) -> range:
        return range(self._size)

    def __len__(self) -> int:
        return len(self._selected)

    def __iter__(self) -> Iterator[Fact]:
        return iter(self.facts())

    def __contains__(self, pair: object) -> bool:
        return pair in self._selected

    def contains_unordered(self, a: int, b: int) -> bool:
        return (a, b) in self._selected or (b, a) in self._selected

    def facts(self) -> list[Fact]:
        """Selected facts in row-major order."""

        return sorted(self._selected)

    def toggle(self, a: int, b: int) -> None:
        self._check(a, b)
        key = (a, b)
        if key in self._selected:
            self._selected.remove(key)
        else:
            self._selected.add(key)

    def toggle_row(self, a: int) -> None:
        """Select the whole row, or clear it if it is already fully selected."""

        self._check(a, 0)
        row = {(a, b) for b in self.factors}
        if row <= self._selected:
            self._selected -= row
        else:
            self._selected |= row

    def toggle_column(self, b: int) -> None:
        self._check(0, b)
        col = {(a, b) for a in self.factors}
        if col <= self._selected:
            self._selected -= col
        else:
            self._selected |= col

    def select_all(self) -> None:
        self._selected = {(a, b) for a in self.factors for b in self.factors}

    def clear(self) -> None:
        self._selected.clear()

    def _check(self, a: int, b: int) -> None:
        if not (0 <= a < self._size and 0 <= b < self._size):
            raise ValueError(f"fact ({a}, {b}) is outside a {self._size}x{self._size} grid")
