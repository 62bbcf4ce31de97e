from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

"""ImportJob and RowSource models.

An ImportJob is one sheet ready for the scheduler: its name, the normalized
column names, and a RowSource that workers drain one row at a time.
"""

__all__ = [
    "ImportJob",
    "RawRow",
    "RowSource",
]


@dataclass(frozen=True)
class RawRow:
    """Unnormalized cell values plus their 1-based sheet row number."""
    index: int
    cells: Sequence[Any]


class RowSource:
    """Shared, mutable row queue drained by the worker pool.

    ``take()`` is the only dequeue path and runs under a single mutex; the
    caller does all further work outside of it.
    """

    def __init__(self, rows: Iterable[RawRow]) -> None:
        self._rows: deque[RawRow] = deque(rows)
        self._lock = threading.Lock()
        self._taken = 0

    def take(self) -> RawRow | None:
        with self._lock:
            if not self._rows:
                return None
            self._taken += 1
            return self._rows.popleft()

    def skip(self, count: int) -> int:
        """Discard up to ``count`` leading rows; returns how many were dropped."""
        dropped = 0
        with self._lock:
            while self._rows and dropped < count:
                self._rows.popleft()
                dropped += 1
        return dropped

    @property
    def taken(self) -> int:
        return self._taken

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


@dataclass
class ImportJob:
    """One sheet's worth of work."""
    sheet_name: str
    columns: list[str]
    source: RowSource
    total_rows: int = 0  # data rows at construction (for progress)
    workbook: str | None = None
    _column_set: frozenset[str] = field(default=frozenset(), init=False, repr=False)

    @classmethod
    def from_rows(
        cls, sheet_name: str, columns: list[str], rows: Sequence[RawRow], workbook: str | None = None
    ) -> ImportJob:
        return cls(
            sheet_name=sheet_name,
            columns=columns,
            source=RowSource(rows),
            total_rows=len(rows),
            workbook=workbook,
        )

    def __post_init__(self) -> None:
        self._column_set = frozenset(self.columns)

    def has_columns(self, *names: str) -> bool:
        return all(n in self._column_set for n in names)

    def has_prefix(self, prefix: str) -> bool:
        return any(c.startswith(prefix) for c in self.columns)
