from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from src.client.base import DirectoryClient, record_id
from src.models.row import Row, RowContext

from .group_registry import GroupRegistry

"""Dependency resolution between groups and the deferred retry queue.

A group row that names a parent group (``group_above``) can only be created
once the parent's id is known. Lookup order: registry, then one remote search
by exact title. When both miss, the pipeline defers the row; the scheduler
replays deferred rows one by one, in source row order, after the parallel pass.

Name collisions with groups already in the registry are resolved by
``disambiguate_group_name``: deterministic, collision free, and applied only to
the incoming row's own name (children that reference the original name are not
rewritten).
"""

__all__ = [
    "DeferredQueue",
    "DeferredRow",
    "DependencyResolver",
    "disambiguate_group_name",
]

logger = logging.getLogger("directory_importer.dependencies")


@dataclass(frozen=True)
class DeferredRow:
    row: Row
    dependency: str  # name of the group the row is waiting for


class DeferredQueue:
    """Thread-safe collection of deferred rows; drained in source row order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: list[DeferredRow] = []

    def push(self, row: Row, dependency: str) -> None:
        with self._lock:
            self._items.append(DeferredRow(row=row, dependency=dependency))

    def drain(self) -> list[DeferredRow]:
        with self._lock:
            items = sorted(self._items, key=lambda d: d.row.index)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _first_free(candidates: Callable[[int], str], taken: Callable[[str], bool]) -> tuple[int, str]:
    n = 0
    while True:
        name = candidates(n)
        if not taken(name):
            return n, name
        n += 1


def disambiguate_group_name(
    name: str, group_type: str | None, taken: Callable[[str], bool]
) -> tuple[str, str | None]:
    """Pick a free display name for ``name``; returns (name, group_above override).

    - Club: "<name> Club", then "<name> Club 1", "<name> Club 2", ...
    - Team: "<name> Team", then "<name> 1", "<name> 2", ...; numbered teams are
      placed under the club of the same rank ("<name> Club", "<name> Club 1", ...)
    - other: "<name> <type>" (when typed), then "<name> 1", "<name> 2", ...
    """
    if not taken(name):
        return name, None

    if group_type == "Club":
        _, chosen = _first_free(
            lambda n: f"{name} Club" if n == 0 else f"{name} Club {n}", taken
        )
        return chosen, None

    if group_type == "Team":
        if not taken(f"{name} Team"):
            return f"{name} Team", None
        n, chosen = _first_free(lambda n: f"{name} {n + 1}", taken)
        club = f"{name} Club" if n == 0 else f"{name} Club {n}"
        return chosen, club

    if group_type and not taken(f"{name} {group_type}"):
        return f"{name} {group_type}", None
    _, chosen = _first_free(lambda n: f"{name} {n + 1}", taken)
    return chosen, None


class DependencyResolver:
    """Resolves referenced groups through the registry, falling back to a remote search."""

    def __init__(self, registry: GroupRegistry, client: DirectoryClient) -> None:
        self.registry = registry
        self.client = client

    def find_group(self, name: str, ctx: RowContext | None = None) -> str | None:
        """Registry hit, or one remote title search; None when the group is unknown.

        RemoteServiceError from the search propagates.
        """
        extra = ctx.log_extra if ctx else None
        identifier = self.registry.get(name)
        if identifier is not None:
            logger.info("Found group above: %s at UUID %s", name, identifier, extra=extra)
            return identifier
        for group in self.client.group_search({"title": name}):
            identifier = record_id(group)
            if group.get("title") == name and identifier:
                self.registry.remember(name, identifier)
                logger.info("Found group above by search: %s at UUID %s", name, identifier, extra=extra)
                return identifier
        return None
