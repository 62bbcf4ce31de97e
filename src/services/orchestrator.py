from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from zipfile import BadZipFile

from openpyxl.utils.exceptions import InvalidFileException

from ..client.base import DirectoryClient
from ..excel.reader import FatalParseError, build_import_job, read_excel_file
from ..models.config_models import (
    VARIANT_EVENTS,
    VARIANT_GROUPS,
    VARIANT_MEMBERSHIPS,
    VARIANT_MIXED,
    VARIANT_USERS,
    ImportConfig,
)
from ..models.error_record import ErrorRecord
from ..models.import_job import ImportJob
from ..models.processing_result import ImportResult, SheetResult
from .context import ImportContext
from .event_pipeline import import_event
from .group_pipeline import import_group
from .membership_pipeline import import_membership
from .mixed_pipeline import import_mixed
from .progress import ProgressTracker
from .scheduler import RowHandler, Scheduler
from .user_pipeline import import_user

"""Import job dispatcher and run orchestration.

process_all() scans the source directory for workbooks and, for each sheet,
picks a pipeline variant (by sheet name, then by column shape), builds an
ImportJob and hands it to a Scheduler sized for that variant. One
ImportContext (identity cache, group registry, stats, error log) is shared by
every sheet of the run. The error log is flushed once at the end.
"""

__all__ = [
    "ProcessingError",
    "classify_sheet",
    "import_sheet",
    "process_all",
    "scan_excel_files",
]

logger = logging.getLogger("directory_importer.orchestrator")

SHEET_VARIANTS: dict[str, str] = {
    "Participant Information": VARIANT_MIXED,
    "Users": VARIANT_USERS,
    "Groups": VARIANT_GROUPS,
    "Group Information": VARIANT_GROUPS,
    "Duplicates": VARIANT_GROUPS,
    "Users in Groups": VARIANT_MEMBERSHIPS,
    "Events": VARIANT_EVENTS,
}

HANDLERS: dict[str, RowHandler] = {
    VARIANT_MIXED: import_mixed,
    VARIANT_USERS: import_user,
    VARIANT_GROUPS: import_group,
    VARIANT_MEMBERSHIPS: import_membership,
    VARIANT_EVENTS: import_event,
}

FILE_LEVEL_SHEET = "<FILE_LEVEL>"


class ProcessingError(Exception):
    """Fatal run-level error (source directory missing or unreadable)."""


def classify_sheet(name: str, columns: Iterable[str] = ()) -> str | None:
    """Pipeline variant for a sheet, or None when the sheet is not importable."""
    variant = SHEET_VARIANTS.get(name.strip())
    if variant is not None:
        return variant

    cols = set(columns)
    if any(c.startswith("participant_") for c in cols):
        return VARIANT_MIXED
    if {"group_name", "group_categories"} <= cols:
        return VARIANT_GROUPS
    if "group_role" in cols and ("email_address" in cols or "uuid" in cols):
        return VARIANT_MEMBERSHIPS
    if {"title", "groups_involved"} <= cols:
        return VARIANT_EVENTS
    if {"first_name", "last_name"} <= cols:
        return VARIANT_USERS
    return None


def scan_excel_files(directory: Path) -> list[Path]:
    """Scan directory for .xlsx files (non-recursive, sorted by name).

    Raises:
        ProcessingError: If directory doesn't exist or can't be read
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix == ".xlsx" and not p.name.startswith("~$")
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def import_sheet(ictx: ImportContext, job: ImportJob, variant: str) -> SheetResult:
    """Run one classified sheet through its pipeline with the configured worker count."""
    config = ictx.config
    workers = config.worker_count(variant)
    logger.info("Importing %s from sheet %s with %d workers", variant, job.sheet_name, workers)
    scheduler = Scheduler(
        ictx,
        HANDLERS[variant],
        workers,
        run_character=config.run_character,
        skip_rows=config.skip_rows,
    )
    result = scheduler.run(job, variant)
    logger.info(
        "Sheet %s: %d rows, %d succeeded, %d failed, %d deferred",
        job.sheet_name,
        result.rows_seen,
        result.succeeded,
        result.failed,
        result.deferred_rows,
    )
    return result


def _aborted(sheet: str, variant: str | None, error: str) -> SheetResult:
    return SheetResult(
        sheet_name=sheet,
        variant=variant,
        rows_seen=0,
        outcomes={},
        deferred_rows=0,
        retried_rows=0,
        elapsed_seconds=0.0,
        error=error,
    )


def _process_single_file(
    file_path: Path, ictx: ImportContext, sheets: set[str] | None
) -> tuple[list[SheetResult], int]:
    """Import every recognized sheet of one workbook; returns (sheet results, skipped sheets)."""
    workbook = file_path.name
    try:
        raw_sheets = read_excel_file(file_path, target_sheets=sheets)
    except (OSError, ValueError, BadZipFile, InvalidFileException) as e:
        logger.error("Failed to read workbook %s: %s", workbook, e)
        ictx.error_log.append(
            ErrorRecord.create(workbook, FILE_LEVEL_SHEET, -1, "WORKBOOK_READ_ERROR", str(e))
        )
        return [_aborted(FILE_LEVEL_SHEET, None, str(e))], 0

    results: list[SheetResult] = []
    skipped = 0
    for sheet_name, df in raw_sheets.items():
        try:
            job = build_import_job(df, sheet_name, workbook=workbook)
        except FatalParseError as e:
            logger.error("Error parsing column labels: %s", e)
            ictx.error_log.append(
                ErrorRecord.create(workbook, sheet_name, 2, "FATAL_PARSE_ERROR", str(e))
            )
            results.append(_aborted(sheet_name, SHEET_VARIANTS.get(sheet_name), str(e)))
            continue

        variant = classify_sheet(sheet_name, job.columns)
        if variant is None:
            logger.info("Don't know what to do with sheet %s", sheet_name)
            skipped += 1
            continue
        results.append(import_sheet(ictx, job, variant))
    return results, skipped


def process_all(
    config: ImportConfig,
    client: DirectoryClient | None = None,
    *,
    sheets: Iterable[str] | None = None,
    ictx: ImportContext | None = None,
) -> ImportResult:
    """Import every workbook in ``config.source_directory``.

    Args:
        config: Run configuration
        client: Directory client (ignored when ``ictx`` is given)
        sheets: Only import sheets with these names (None = all)
        ictx: Pre-built context (tests inject one to inspect cache/stats)

    Raises:
        ProcessingError: For fatal errors that prevent processing
    """
    if ictx is None:
        if client is None:
            raise ProcessingError("no directory client given")
        ictx = ImportContext(client=client, config=config)

    start_time = datetime.now(UTC)
    file_paths = scan_excel_files(Path(config.source_directory))
    wanted = set(sheets) if sheets else None

    sheet_results: list[SheetResult] = []
    skipped_sheets = 0
    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path.name)
            logger.info("Importing workbook %s", file_path.name)
            results, skipped = _process_single_file(file_path, ictx, wanted)
            sheet_results.extend(results)
            skipped_sheets += skipped
            progress.set_postfix(sheets=len(sheet_results))
            progress.finish_file()

    error_file = ictx.error_log.flush()
    if error_file is not None:
        logger.info("Row errors written to %s", error_file)

    end_time = datetime.now(UTC)
    return ImportResult(
        sheet_results=sheet_results,
        stats=ictx.stats.snapshot(),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        skipped_sheets=skipped_sheets,
    )
