# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable
from datetime import date
from pathlib import Path

import pandas as pd
import pytest

from src.client.memory import InMemoryDirectoryClient
from src.logging.error_log import ErrorLogBuffer
from src.logging.init import reset_logging
from src.models.config_models import ImportConfig
from src.models.row import Row, RowContext
from src.services.context import ImportContext

IMPORT_DATE = date(2024, 6, 1)


@pytest.fixture(autouse=True)
def _clean_logging():
    # app logger must propagate so caplog sees pipeline records
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """source_directory: ./data
workers:
  mixed: 2
  groups: 2
minor_age_threshold: 14
group_map_path: imported_groups.csv
check_email_domains: false
timezone: UTC
client:
  factory: src.client.memory:make_dry_run_client
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def client() -> InMemoryDirectoryClient:
    return InMemoryDirectoryClient()


@pytest.fixture()
def import_config(tmp_path: Path) -> ImportConfig:
    return ImportConfig(
        source_directory=str(tmp_path / "data"),
        check_email_domains=False,
        group_map_path=str(tmp_path / "imported_groups.csv"),
    )


@pytest.fixture()
def ictx(client: InMemoryDirectoryClient, import_config: ImportConfig, tmp_path: Path) -> ImportContext:
    return ImportContext(
        client=client,
        config=import_config,
        error_log=ErrorLogBuffer(tmp_path / "logs"),
        today=IMPORT_DATE,
    )


@pytest.fixture()
def make_row() -> Callable[..., tuple[Row, RowContext]]:
    def _make(index: int = 3, sheet: str = "Users", **values: str) -> tuple[Row, RowContext]:
        return Row(index=index, values=values), RowContext(sheet=sheet, row=index)

    return _make


@pytest.fixture()
def make_workbook() -> Callable[[Path, dict[str, list[list[object]]]], Path]:
    """Write a real .xlsx with header-less sheets (row 1 descriptions, row 2 labels)."""

    def _make(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for sheet_name, rows in sheets.items():
                pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
        return path

    return _make
