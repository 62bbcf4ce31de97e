from __future__ import annotations

from ..models.processing_result import ImportResult
from .stats import format_elapsed, format_stats

"""Summary line rendering for the end of an import run.

Two lines are emitted at SUMMARY level:

    SUMMARY sheets=<n> rows=<n> succeeded=<n> failed=<n> deferred=<n> elapsed_sec=<x>
    SUMMARY Imported Groups: 2, Users: 5 in 1 minutes 3 seconds.
"""

__all__ = [
    "format_elapsed_sec",
    "render_stats_line",
    "render_summary_line",
]


def format_elapsed_sec(seconds: float) -> str:
    """Plain decimal without scientific notation; whole numbers without a fraction."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY metrics line.

    >>> from datetime import datetime, timezone
    >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> render_summary_line(ImportResult([], {}, t, t, 2.0))
    'SUMMARY sheets=0 rows=0 succeeded=0 failed=0 deferred=0 elapsed_sec=2'
    """
    return (
        f"SUMMARY sheets={len(result.sheet_results)} "
        f"rows={result.total_rows} "
        f"succeeded={result.succeeded_rows} "
        f"failed={result.failed_rows} "
        f"deferred={result.deferred_rows} "
        f"elapsed_sec={format_elapsed_sec(result.elapsed_seconds)}"
    )


def render_stats_line(result: ImportResult) -> str:
    """``Imported <category>: <n>, ... in M minutes S seconds.`` (categories sorted)."""
    return f"{format_stats(result.stats)} in {format_elapsed(result.elapsed_seconds)}."
