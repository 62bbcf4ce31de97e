from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

import pandas as pd

"""Row and RowContext models for the directory bulk importer.

A Row is the normalized, immutable view of one spreadsheet data row: column name
-> trimmed string value, with empty cells dropped. The 1-based source index is
kept for log attribution and for ordering the deferred retry pass.
"""

__all__ = [
    "Row",
    "RowContext",
]


def _cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        # Excel stores numeric cells as float; ZIP codes and ids read back as "12345.0"
        return str(int(value))
    if isinstance(value, (datetime, date)):
        stamp = pd.Timestamp(value)
        return stamp.date().isoformat() if stamp == stamp.normalize() else stamp.isoformat()
    return str(value).strip()


@dataclass(frozen=True)
class Row(Mapping[str, str]):
    """Normalized data row (column name -> non-empty trimmed string)."""
    index: int  # 1-based source row number
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {k: v for k, v in self.values.items() if v != ""}
        object.__setattr__(self, "values", MappingProxyType(cleaned))

    @classmethod
    def build(cls, raw_values: Sequence[Any], columns: Sequence[str], index: int) -> Row:
        """Zip raw cell values with column names, stringify, strip, drop empties."""
        values: dict[str, str] = {}
        for col, raw in zip(columns, raw_values, strict=False):
            text = _cell_to_str(raw)
            if text:
                values[col] = text
        return cls(index=index, values=values)

    def __getitem__(self, key: str) -> str:
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def key_filter(self, prefix: str, replacement: str = "") -> dict[str, str]:
        """Return columns starting with ``prefix`` with the prefix replaced."""
        return {
            replacement + key[len(prefix):]: value
            for key, value in self.values.items()
            if key.startswith(prefix)
        }

    def with_values(self, values: Mapping[str, str]) -> Row:
        return Row(index=self.index, values=dict(values))


@dataclass(frozen=True)
class RowContext:
    """Per-row log correlation (sheet + source row number)."""
    sheet: str
    row: int

    @property
    def log_extra(self) -> dict[str, Any]:
        return {"row": self.row, "sheet": self.sheet}
