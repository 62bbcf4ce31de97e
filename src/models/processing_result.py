from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from .outcome import OutcomeKind, RowOutcome

"""Processing result models for the directory bulk importer.

SheetResult aggregates per-row outcomes of one sheet import; ImportResult is
the run-level roll-up used for the SUMMARY line and the exit code.
"""


@dataclass(frozen=True)
class SheetResult:
    """Per-sheet processing statistics."""
    sheet_name: str
    variant: str | None  # pipeline variant; None when the sheet was not recognized
    rows_seen: int  # rows dequeued by workers (after skip_rows)
    outcomes: dict[str, int]  # OutcomeKind.value -> count (final, after retry)
    deferred_rows: int  # rows deferred during the parallel pass
    retried_rows: int  # rows replayed in the sequential pass
    elapsed_seconds: float
    error: str | None = None  # sheet-level abort reason (FatalParseError)

    def count(self, kind: OutcomeKind) -> int:
        return self.outcomes.get(kind.value, 0)

    @property
    def succeeded(self) -> int:
        return self.count(OutcomeKind.CREATED) + self.count(OutcomeKind.ALREADY_EXISTS)

    @property
    def failed(self) -> int:
        return sum(
            self.count(k)
            for k in (
                OutcomeKind.VALIDATION_FAILED,
                OutcomeKind.DUPLICATE_IDENTITY,
                OutcomeKind.DEPENDENCY_UNRESOLVED,
                OutcomeKind.REMOTE_FAILURE,
            )
        )


@dataclass(frozen=True)
class ImportResult:
    """Aggregated results for a whole run (all workbooks, all sheets)."""
    sheet_results: list[SheetResult]
    stats: dict[str, int]  # category -> successful operations
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    skipped_sheets: int = 0  # sheets with no matching pipeline

    @property
    def total_rows(self) -> int:
        return sum(s.rows_seen for s in self.sheet_results)

    @property
    def succeeded_rows(self) -> int:
        return sum(s.succeeded for s in self.sheet_results)

    @property
    def failed_rows(self) -> int:
        return sum(s.failed for s in self.sheet_results)

    @property
    def deferred_rows(self) -> int:
        return sum(s.deferred_rows for s in self.sheet_results)

    @property
    def aborted_sheets(self) -> int:
        return sum(1 for s in self.sheet_results if s.error is not None)


@dataclass
class OutcomeTally:
    """Thread-safe outcome counter used while a sheet is in flight."""
    _counts: Counter[str] = field(default_factory=Counter)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add(self, outcome: RowOutcome) -> None:
        with self._lock:
            self._counts[outcome.kind.value] += 1

    def discard(self, kind: OutcomeKind) -> None:
        """Undo one count of ``kind`` (a deferred row being replayed)."""
        with self._lock:
            if self._counts[kind.value] > 0:
                self._counts[kind.value] -= 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {k: v for k, v in self._counts.items() if v}
