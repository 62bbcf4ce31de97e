from __future__ import annotations

import threading
from collections.abc import Mapping

"""Thread-safe statistics aggregator (successful operations per entity type)."""

__all__ = [
    "StatsCounter",
    "format_elapsed",
    "format_stats",
]


def format_elapsed(seconds: float) -> str:
    whole = int(seconds)
    return f"{whole // 60} minutes {whole % 60} seconds"


def format_stats(counts: Mapping[str, int]) -> str:
    """``"Imported Groups: 2, Users: 5"`` (categories sorted, zero counts dropped)."""
    parts = [f"{k}: {v}" for k, v in sorted(counts.items()) if v]
    return "Imported " + (", ".join(parts) if parts else "nothing")


class StatsCounter:
    """Category -> count, guarded by its own mutex (independent of the identity cache)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}

    def increment(self, category: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[category] = self._counts.get(category, 0) + amount

    def get(self, category: str) -> int:
        with self._lock:
            return self._counts.get(category, 0)

    def snapshot(self) -> dict[str, int]:
        """Sorted copy without zero entries."""
        with self._lock:
            return {k: v for k, v in sorted(self._counts.items()) if v}

    def summary(self) -> str:
        return format_stats(self.snapshot())

    def summary_with_elapsed(self, elapsed_seconds: float) -> str:
        return f"{self.summary()} in {format_elapsed(elapsed_seconds)}."
