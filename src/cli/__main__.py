from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from src.client.base import DirectoryClient, RemoteServiceError, build_client
from src.client.memory import InMemoryDirectoryClient
from src.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from src.excel.reader import FatalParseError, build_import_job, read_excel_file
from src.logging.init import log_summary, setup_logging
from src.models.config_models import ImportConfig
from src.models.row import Row
from src.services.orchestrator import ProcessingError, classify_sheet, process_all, scan_excel_files
from src.services.summary import render_stats_line, render_summary_line

"""CLI entrypoint: ``python -m src.cli``.

Flow: load .env -> load config -> build the directory client (or an in-memory
one for ``--dry-run``) -> import every workbook -> print the SUMMARY lines.

Exit codes:
    0  every row succeeded (or was skipped)
    2  some rows or sheets failed
    1  fatal: configuration, client or source directory problem
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path) -> None:
    """Load .env via python-dotenv; values already in the environment win."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spreadsheet -> directory service bulk importer")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config YAML path")
    p.add_argument("--dry-run", action="store_true", help="Import into an in-memory directory")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet columns & first rows then exit")
    p.add_argument(
        "--sheet",
        action="append",
        dest="sheets",
        metavar="NAME",
        help="Only import this sheet (repeatable)",
    )
    p.add_argument("--log-file", type=Path, default=None, help="Also write a CSV log to this file")
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig, sheets: list[str] | None) -> int:
    try:
        excel_files = scan_excel_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not excel_files:
        print("inspect: no .xlsx files")
        return EXIT_SUCCESS_ALL
    for f in excel_files:
        print(f"FILE: {f.name}")
        raw = read_excel_file(f, target_sheets=sheets)
        for sname, df in raw.items():
            try:
                job = build_import_job(df, sname, workbook=f.name)
            except FatalParseError as e:
                print(f"  SHEET: {sname} error={e}")
                continue
            variant = classify_sheet(sname, job.columns) or "unknown"
            print(f"  SHEET: {sname} variant={variant} rows={job.total_rows} cols={job.columns}")
            for _ in range(min(3, job.total_rows)):
                raw_row = job.source.take()
                if raw_row is None:
                    break
                row = Row.build(raw_row.cells, job.columns, raw_row.index)
                print(f"    row {row.index}: {dict(row)}")
    return EXIT_SUCCESS_ALL


def _build_client(cfg: ImportConfig, dry_run: bool) -> DirectoryClient:
    if dry_run:
        return InMemoryDirectoryClient()
    return build_client(cfg.client)


def main(argv: list[str] | None = None) -> int:
    # None only: an explicit [] must not fall back to sys.argv (pytest flags)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    logger = setup_logging(args.log_file)
    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"))
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error("config: %s", e)
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg, args.sheets)

    try:
        client = _build_client(cfg, args.dry_run)
    except RemoteServiceError as e:
        logger.error("client: %s", e)
        return EXIT_FATAL

    logger.info("Processing files from: %s", cfg.source_directory)
    try:
        result = process_all(cfg, client, sheets=args.sheets)
    except ProcessingError as e:
        logger.error("processing: %s", e)
        return EXIT_FATAL

    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(result).removeprefix("SUMMARY "))
    log_summary(render_stats_line(result))

    if result.failed_rows > 0 or result.aborted_sheets > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
