from __future__ import annotations

import threading

import pytest

from src.models.import_job import ImportJob, RawRow
from src.models.outcome import OutcomeKind, RowOutcome
from src.services.scheduler import Scheduler

COLUMNS = ["name", "run_character", "needs"]


def _job(rows: list[list[str]], workbook: str = "book.xlsx") -> ImportJob:
    raw = [RawRow(index=3 + i, cells=cells) for i, cells in enumerate(rows)]
    return ImportJob.from_rows("Groups", COLUMNS, raw, workbook=workbook)


class RecordingHandler:
    """Creates every row except those whose ``needs`` dependency is not yet 'created'."""

    def __init__(self, ready_on_retry: set[str] | None = None) -> None:
        self.lock = threading.Lock()
        self.seen: list[tuple[int, bool]] = []
        self.threads: set[str] = set()
        self.ready_on_retry = ready_on_retry or set()

    def __call__(self, ictx, row, rctx, *, retry=False):
        with self.lock:
            self.seen.append((row.index, retry))
            self.threads.add(threading.current_thread().name)
        needs = row.get("needs")
        if needs and not (retry and needs in self.ready_on_retry):
            if retry:
                return RowOutcome.unresolved(needs)
            return RowOutcome.deferred(needs)
        return RowOutcome.created(row["name"], "Groups")


def test_every_row_processed_exactly_once(ictx):
    handler = RecordingHandler()
    job = _job([[f"g{i}", "", ""] for i in range(50)])

    result = Scheduler(ictx, handler, workers=4).run(job, "groups")

    assert sorted(index for index, _ in handler.seen) == list(range(3, 53))
    assert result.rows_seen == 50
    assert result.count(OutcomeKind.CREATED) == 50
    assert result.variant == "groups"
    assert all(name.startswith("import-Groups") for name in handler.threads)


def test_run_character_filters_rows(ictx):
    handler = RecordingHandler()
    job = _job([["a", "A", ""], ["b", "B", ""], ["c", "", ""]])

    result = Scheduler(ictx, handler, workers=2, run_character="A").run(job)

    assert [index for index, _ in handler.seen] == [3]
    assert result.count(OutcomeKind.SKIPPED) == 2
    assert result.rows_seen == 3


def test_skip_rows_drops_leading_rows(ictx):
    handler = RecordingHandler()
    job = _job([["a", "", ""], ["b", "", ""], ["c", "", ""]])

    result = Scheduler(ictx, handler, workers=1, skip_rows=2).run(job)

    assert handler.seen == [(5, False)]
    assert result.rows_seen == 1


def test_empty_rows_are_skipped_without_calling_handler(ictx):
    handler = RecordingHandler()
    job = _job([["", "", ""], ["a", "", ""]])

    result = Scheduler(ictx, handler, workers=1).run(job)

    assert handler.seen == [(4, False)]
    assert result.count(OutcomeKind.SKIPPED) == 1


def test_deferred_rows_replayed_once_in_row_order(ictx):
    handler = RecordingHandler(ready_on_retry={"Regional League"})
    job = _job(
        [
            ["late", "", "Regional League"],
            ["x", "", ""],
            ["later", "", "Regional League"],
            ["y", "", ""],
        ]
    )

    result = Scheduler(ictx, handler, workers=3).run(job)

    retries = [index for index, retry in handler.seen if retry]
    assert retries == [3, 5]
    assert len(handler.seen) == 6
    assert result.deferred_rows == 2
    assert result.retried_rows == 2
    assert result.count(OutcomeKind.CREATED) == 4
    assert result.count(OutcomeKind.DEFERRED) == 0


def test_unresolved_dependency_is_recorded(ictx):
    handler = RecordingHandler()
    job = _job([["orphan", "", "Nowhere"]])

    result = Scheduler(ictx, handler, workers=1).run(job)

    assert result.count(OutcomeKind.DEPENDENCY_UNRESOLVED) == 1
    assert result.failed == 1
    (record,) = ictx.error_log.records()
    assert (record.workbook, record.sheet, record.row) == ("book.xlsx", "Groups", 3)
    assert record.error_type == "DEPENDENCY_UNRESOLVED"


def test_deferral_on_replay_becomes_unresolved(ictx):
    def always_defers(ictx, row, rctx, *, retry=False):
        return RowOutcome.deferred("Regional League")

    result = Scheduler(ictx, always_defers, workers=1).run(_job([["a", "", ""]]))

    assert result.count(OutcomeKind.DEPENDENCY_UNRESOLVED) == 1
    assert ictx.error_log.records()[0].message == "Regional League"


def test_handler_crash_is_contained(ictx, caplog):
    def explodes(ictx, row, rctx, *, retry=False):
        if row["name"] == "bad":
            raise KeyError("boom")
        return RowOutcome.created(row["name"], "Groups")

    job = _job([["good", "", ""], ["bad", "", ""], ["fine", "", ""]])

    result = Scheduler(ictx, explodes, workers=2).run(job)

    assert result.count(OutcomeKind.CREATED) == 2
    assert result.count(OutcomeKind.REMOTE_FAILURE) == 1
    (record,) = ictx.error_log.records()
    assert record.error_type == "UNEXPECTED_ERROR"
    assert record.row == 4
    assert "KeyError" in record.message
    assert "Unexpected error" in caplog.text


def test_validation_failures_are_logged_with_outcome_type(ictx):
    def rejects(ictx, row, rctx, *, retry=False):
        return RowOutcome.validation_failed("Group name required for group import.")

    Scheduler(ictx, rejects, workers=1).run(_job([["a", "", ""]]))

    (record,) = ictx.error_log.records()
    assert record.error_type == "VALIDATION_FAILED"
    assert record.message == "Group name required for group import."


@pytest.mark.parametrize("workers", [0, -1])
def test_rejects_non_positive_worker_count(ictx, workers):
    with pytest.raises(ValueError):
        Scheduler(ictx, RecordingHandler(), workers=workers)
