from __future__ import annotations

import csv
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

"""Group registry: group display name -> remote id, plus the persisted CSV map.

The CSV (default ``imported_groups.csv``) is append-only, one
``row,name,uuid`` line per created group. It seeds the registry at the start of
a run so that a partially completed group import can be resumed: rows whose
number is already in the file are not created again.
"""

__all__ = [
    "GroupMapFile",
    "GroupRegistry",
]

logger = logging.getLogger("directory_importer.groups")

T = TypeVar("T")


class GroupMapFile:
    """Append-only CSV of (row index, group name, remote id)."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def read(self) -> list[tuple[str, str, str]]:
        if not self.path.exists():
            return []
        entries: list[tuple[str, str, str]] = []
        with self.path.open(newline="", encoding="utf-8") as f:
            for line_no, rec in enumerate(csv.reader(f), start=1):
                if len(rec) < 3:
                    logger.warning("%s:%d malformed group map entry %r", self.path, line_no, rec)
                    continue
                entries.append((rec[0], rec[1], rec[2]))
        return entries

    def append(self, row: int, name: str, identifier: str) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow([row, name, identifier])


class GroupRegistry:
    """Thread-safe name -> id and row -> id maps, optionally backed by a GroupMapFile."""

    def __init__(self, map_file: GroupMapFile | None = None) -> None:
        self._lock = threading.Lock()
        self._by_name: dict[str, str] = {}
        self._by_row: dict[str, str] = {}
        self._reserved: set[str] = set()
        self._map_file = map_file
        if map_file is not None:
            for row, name, identifier in map_file.read():
                self._by_name[name] = identifier
                self._by_row[row] = identifier

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._by_name.get(name)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._by_name

    def id_for_row(self, row: int) -> str | None:
        with self._lock:
            return self._by_row.get(str(row))

    def remember(self, name: str, identifier: str) -> None:
        """Record a group found remotely (not persisted: it was not created by this tool)."""
        with self._lock:
            self._by_name.setdefault(name, identifier)

    def reserve(self, choose: Callable[[Callable[[str], bool]], tuple[str, T]]) -> tuple[str, T]:
        """Pick a name with ``choose`` and hold it until ``register`` or ``release``.

        ``choose`` receives a predicate that is true for registered and reserved
        names; it runs under the registry lock, so two callers never get the
        same name.
        """
        with self._lock:
            name, rest = choose(lambda n: n in self._by_name or n in self._reserved)
            self._reserved.add(name)
        return name, rest

    def release(self, name: str) -> None:
        with self._lock:
            self._reserved.discard(name)

    def register(self, row: int, name: str, identifier: str) -> None:
        """Record a group created by this run and append it to the persisted map."""
        with self._lock:
            self._by_name[name] = identifier
            self._by_row[str(row)] = identifier
            self._reserved.discard(name)
        if self._map_file is not None:
            self._map_file.append(row, name, identifier)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._by_name)
