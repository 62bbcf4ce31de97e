from __future__ import annotations

import logging

from src.logging.init import (
    CSV_LOG_HEADER,
    SUMMARY_LEVEL,
    CsvLogFormatter,
    LabeledFormatter,
    get_logger,
    log_summary,
    setup_logging,
)


def _record(msg: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("directory_importer.users", level, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_labeled_formatter_prefixes():
    fmt = LabeledFormatter()
    assert fmt.format(_record("hello")) == "INFO hello"
    assert fmt.format(_record("careful", logging.WARNING)) == "WARN careful"
    assert fmt.format(_record("done", SUMMARY_LEVEL)) == "SUMMARY done"


def test_labeled_formatter_row_context():
    line = LabeledFormatter().format(_record("Importing group: Wildcats", row=7))
    assert line == "INFO Row 7: Importing group: Wildcats"


def test_csv_formatter_quotes_fields():
    line = CsvLogFormatter().format(_record('said "hi"', logging.ERROR, row=4))
    fields = line.split('","')
    assert fields[0] == '"E'
    assert fields[2] == "ERROR"
    assert fields[3] == "4"
    assert fields[4] == "said 'hi'\""


def test_setup_logging_is_idempotent():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert get_logger() is first
    assert len(first.handlers) == 1
    assert first.propagate is False


def test_child_loggers_reach_app_handlers(capsys):
    setup_logging()
    logging.getLogger("directory_importer.groups").warning("Group name taken")
    log_summary("sheets=1 rows=2")
    out = capsys.readouterr().out
    assert "WARN Group name taken" in out
    assert "SUMMARY sheets=1 rows=2" in out


def test_csv_log_file(tmp_path):
    log_file = tmp_path / "logs" / "import.csv"
    logger = setup_logging(log_file)
    logging.getLogger("directory_importer.users").error("No Birth Date Listed.", extra={"row": 9})
    for handler in logger.handlers:
        handler.flush()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert lines[0] + "\n" == CSV_LOG_HEADER
    assert lines[1].startswith('"E","')
    assert lines[1].endswith('"ERROR","9","No Birth Date Listed."')
