from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pandas as pd

from src.models.import_job import ImportJob, RawRow

"""Workbook reader.

Sheet layout: row 1 holds field descriptions (skipped), row 2 holds the column
labels, rows 3+ are data. Labels are normalized to snake_case keys:
``"First Name\\n(required)"`` -> ``"first_name"``. Data rows keep their
1-based sheet row number so log lines point at the spreadsheet row.

Cells are read with ``keep_default_na=False`` so that text such as ``"NA"``
or ``"None"`` stays text; only truly empty cells become NaN/empty.
"""

__all__ = [
    "FatalParseError",
    "build_import_job",
    "normalize_label",
    "read_excel_file",
]

logger = logging.getLogger("directory_importer.reader")

FIRST_DATA_ROW = 3
_NON_ALNUM = re.compile(r"[^0-9a-z]", re.IGNORECASE)


class FatalParseError(Exception):
    """Raised when the column label row (row 2) is missing or unreadable; aborts the sheet."""


def read_excel_file(path: Path, target_sheets: Iterable[str] | None = None) -> dict[str, pd.DataFrame]:
    """Read a workbook returning raw header-less DataFrames keyed by sheet name.

    ``target_sheets`` limits which sheets are parsed (None = all), in workbook order.
    """
    wanted = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path, engine="openpyxl") as xls:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            dfs[str(name)] = xls.parse(name, header=None, dtype=object, keep_default_na=False)
    return dfs


def normalize_label(label: Any) -> str:
    """Cut at the first newline, strip, replace non-alphanumerics with ``_``, lowercase."""
    if label is None or (isinstance(label, float) and pd.isna(label)):
        return ""
    text = str(label).split("\n", 1)[0].strip()
    return _NON_ALNUM.sub("_", text).lower()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def build_import_job(df: pd.DataFrame, sheet_name: str, workbook: str | None = None) -> ImportJob:
    """Turn a raw sheet into an ImportJob.

    Raises:
        FatalParseError: the sheet has no label row, or every label is empty
    """
    if df.shape[0] < 2:
        raise FatalParseError(f"sheet '{sheet_name}' lacks the column label row (row 2)")

    columns = [normalize_label(v) for v in df.iloc[1].tolist()]
    if not any(columns):
        raise FatalParseError(f"sheet '{sheet_name}' has an empty column label row (row 2)")
    # unlabeled columns still need a distinct key
    columns = [c or f"column_{i}" for i, c in enumerate(columns, start=1)]
    logger.debug("sheet %s columns: %s", sheet_name, columns)

    rows: list[RawRow] = []
    for offset, cells in enumerate(df.iloc[2:].itertuples(index=False, name=None)):
        if all(_is_blank(v) for v in cells):
            continue
        rows.append(RawRow(index=FIRST_DATA_ROW + offset, cells=list(cells)))
    return ImportJob.from_rows(sheet_name, columns, rows, workbook=workbook)
