from __future__ import annotations

import json

import jsonschema
import pytest

from src.logging.error_log import ErrorLogBuffer
from src.models.error_record import ErrorRecord

"""Error log JSON Lines record contract."""

ERROR_RECORD_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "required": ["timestamp", "workbook", "sheet", "row", "error_type", "message"],
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "workbook": {"type": "string"},
        "sheet": {"type": "string"},
        "row": {"type": "integer", "minimum": -1},
        "error_type": {"type": "string", "pattern": "^[A-Z][A-Z_]*$"},
        "message": {"type": "string"},
    },
}


@pytest.mark.parametrize(
    ("row", "error_type"),
    [
        (3, "VALIDATION_FAILED"),
        (12, "DEPENDENCY_UNRESOLVED"),
        (2, "FATAL_PARSE_ERROR"),
        (-1, "WORKBOOK_READ_ERROR"),
        (7, "UNEXPECTED_ERROR"),
    ],
)
def test_written_records_match_schema(tmp_path, row, error_type):
    buf = ErrorLogBuffer(tmp_path)
    buf.append(ErrorRecord.create("book.xlsx", "Groups", row, error_type, "reason"))
    path = buf.flush()

    (line,) = path.read_text(encoding="utf-8").splitlines()
    jsonschema.validate(json.loads(line), ERROR_RECORD_SCHEMA)


def test_schema_rejects_extra_key():
    record = json.loads(ErrorRecord.create("b.xlsx", "Users", 3, "REMOTE_FAILURE", "503").to_json_line())
    record["extra"] = "not allowed"
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, ERROR_RECORD_SCHEMA)
