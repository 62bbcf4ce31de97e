from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from src.models.import_job import ImportJob, RawRow
from src.models.outcome import OutcomeKind, RowOutcome
from src.models.processing_result import OutcomeTally, SheetResult
from src.models.row import Row, RowContext

from .context import ImportContext
from .dependency_resolver import DeferredQueue
from .progress import RowProgress

"""Worker pool: N threads drain one sheet's RowSource, then deferred rows are replayed.

Parallel pass: each worker loops on ``RowSource.take()`` (the only locked
section) and runs the row handler outside that lock. Rows whose handler
returns DEFERRED are queued. After all workers have joined, the queue is
drained in source row order and each row is run once more with
``retry=True``; that replay never defers again.
"""

__all__ = [
    "RowHandler",
    "Scheduler",
]

logger = logging.getLogger("directory_importer.scheduler")

# handler(ictx, row, rctx, *, retry=False) -> RowOutcome
RowHandler = Callable[..., RowOutcome]

UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class Scheduler:
    """Runs one handler over every row of an ImportJob with a fixed-size thread pool."""

    def __init__(
        self,
        ictx: ImportContext,
        handler: RowHandler,
        workers: int,
        *,
        run_character: str | None = None,
        skip_rows: int = 0,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.ictx = ictx
        self.handler = handler
        self.workers = workers
        self.run_character = run_character
        self.skip_rows = skip_rows

    def run(self, job: ImportJob, variant: str | None = None) -> SheetResult:
        start = time.perf_counter()
        tally = OutcomeTally()
        deferred = DeferredQueue()

        if self.skip_rows:
            dropped = job.source.skip(self.skip_rows)
            logger.info("Skipping %d rows of sheet %s", dropped, job.sheet_name)

        logger.debug("sheet %s: %d workers, %d rows", job.sheet_name, self.workers, len(job.source))
        with RowProgress(job.sheet_name, len(job.source)) as progress:
            with ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix=f"import-{job.sheet_name}"
            ) as pool:
                futures = [
                    pool.submit(self._drain, job, tally, deferred, progress)
                    for _ in range(self.workers)
                ]
            for future in futures:
                # workers contain row errors; anything raised here is a scheduler bug
                future.result()

            pending = deferred.drain()
            if pending:
                logger.info("Retrying %d deferred rows of sheet %s", len(pending), job.sheet_name)
            for item in pending:
                progress.replay(item.row.index)
                tally.discard(OutcomeKind.DEFERRED)
                rctx = RowContext(sheet=job.sheet_name, row=item.row.index)
                outcome, error_type = self._run_handler(item.row, rctx, retry=True)
                if outcome.kind is OutcomeKind.DEFERRED:
                    # handlers must not defer on replay
                    outcome = RowOutcome.unresolved(item.dependency)
                self._account(job, rctx, outcome, tally, error_type)

        return SheetResult(
            sheet_name=job.sheet_name,
            variant=variant,
            rows_seen=job.source.taken,
            outcomes=tally.snapshot(),
            deferred_rows=len(pending),
            retried_rows=len(pending),
            elapsed_seconds=time.perf_counter() - start,
        )

    def _drain(
        self,
        job: ImportJob,
        tally: OutcomeTally,
        deferred: DeferredQueue,
        progress: RowProgress,
    ) -> None:
        while True:
            raw = job.source.take()
            if raw is None:
                return
            try:
                self._process(job, raw, tally, deferred)
            finally:
                progress.advance(raw.index)

    def _process(
        self, job: ImportJob, raw: RawRow, tally: OutcomeTally, deferred: DeferredQueue
    ) -> None:
        row = Row.build(raw.cells, job.columns, raw.index)
        rctx = RowContext(sheet=job.sheet_name, row=raw.index)

        if self.run_character is not None and row.get("run_character") != self.run_character:
            logger.info("Skipping row %d", raw.index, extra=rctx.log_extra)
            tally.add(RowOutcome.skipped("run_character mismatch"))
            return
        if not row:
            tally.add(RowOutcome.skipped("empty row"))
            return

        outcome, error_type = self._run_handler(row, rctx)
        if outcome.kind is OutcomeKind.DEFERRED:
            deferred.push(row, outcome.reason or "")
            tally.add(outcome)
            return
        self._account(job, rctx, outcome, tally, error_type)

    def _run_handler(
        self, row: Row, rctx: RowContext, *, retry: bool = False
    ) -> tuple[RowOutcome, str | None]:
        """Run the handler; returns the outcome and an error_type override for crashes."""
        try:
            return self.handler(self.ictx, row, rctx, retry=retry), None
        except Exception as e:
            logger.exception("Unexpected error: %s", e, extra=rctx.log_extra)
            return RowOutcome.remote_failure(f"{type(e).__name__}: {e}"), UNEXPECTED_ERROR

    def _account(
        self,
        job: ImportJob,
        rctx: RowContext,
        outcome: RowOutcome,
        tally: OutcomeTally,
        error_type: str | None = None,
    ) -> None:
        tally.add(outcome)
        if outcome.failed:
            self.ictx.record_failure(job.workbook or "", rctx, outcome, error_type=error_type)
