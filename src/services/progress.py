from __future__ import annotations

import sys
import threading
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

Two levels are shown while importing:
- workbook progress: workbooks processed / total
- row progress for the sheet in flight, advanced by every worker thread

In non-TTY environments (CI, redirected output) no bar is drawn, so log lines
stay free of ANSI control sequences.
"""

__all__ = [
    "ProgressTracker",
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress bars should be drawn."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Workbook-level progress bar."""

    def __init__(self, total_files: int, *, description: str = "Importing workbooks") -> None:
        self.total_files = total_files
        self.description = description
        self.current_file = 0
        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_files,
                desc=description,
                unit="file",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def start_file(self, name: str) -> None:
        self.current_file += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({name})")

    def finish_file(self) -> None:
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class RowProgress:
    """Row-level progress for one sheet; ``advance`` is safe to call from any worker.

    ``position`` is the row's source index, so the bar also reports which row
    a replayed (deferred) row came from.
    """

    def __init__(self, sheet_name: str, total_rows: int) -> None:
        self.sheet_name = sheet_name
        self.total_rows = total_rows
        self.done = 0
        self._lock = threading.Lock()
        self.pbar: TqdmType[Any] | None = None
        if is_tty_enabled():
            self.pbar = tqdm(
                total=total_rows,
                desc=f"  {sheet_name}",
                unit="row",
                leave=False,
                position=1,
                ncols=80,
                ascii=True,
            )

    def advance(self, position: int | None = None) -> None:
        with self._lock:
            self.done += 1
            if self.pbar is not None:
                self.pbar.update(1)
                if position is not None:
                    self.pbar.set_postfix(row=position)

    def replay(self, position: int) -> None:
        """Show a deferred row being retried (does not advance the count)."""
        with self._lock:
            if self.pbar is not None:
                self.pbar.set_postfix(retry_row=position)

    def close(self) -> None:
        with self._lock:
            if self.pbar is not None:
                self.pbar.close()
                self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
