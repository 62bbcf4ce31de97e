from __future__ import annotations

import logging
import sys
from pathlib import Path

"""Logging initialization with labeled prefixes.

Console output uses labeled prefixes (INFO|WARN|ERROR|SUMMARY). Records that
carry a row context (``extra={"row": n}``) render as ``LABEL Row n: message``
so that every row outcome can be traced back to its spreadsheet row.

An optional CSV log file mirrors every record with the columns
Severity, Date, Severity (Full), Row, Info.
"""

__all__ = [
    "APP_LOGGER_NAME",
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
]

APP_LOGGER_NAME = "directory_importer"

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

CSV_LOG_HEADER = '"Severity","Date","Severity (Full)","Row","Info"\n'

_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formatter that prefixes messages with a short level label."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        row = getattr(record, "row", None)
        if row is not None:
            return f"{level_label} Row {row}: {record.getMessage()}"
        return f"{level_label} {record.getMessage()}"


class CsvLogFormatter(logging.Formatter):
    """One quoted CSV line per record; double quotes in messages become single quotes."""

    def format(self, record: logging.LogRecord) -> str:
        label = LabeledFormatter.LEVEL_LABELS.get(record.levelno, record.levelname)
        row = getattr(record, "row", None)
        fields = [
            label[:1],
            self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            label,
            "" if row is None else str(row),
            record.getMessage(),
        ]
        return ",".join('"' + f.replace('"', "'") + '"' for f in fields)


def _csv_file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    fresh = not path.exists() or path.stat().st_size == 0
    handler = logging.FileHandler(path, encoding="utf-8")
    if fresh:
        handler.stream.write(CSV_LOG_HEADER)
        handler.stream.flush()
    handler.setFormatter(CsvLogFormatter())
    return handler


def setup_logging(log_file: Path | None = None) -> logging.Logger:
    """Configure the application logger (idempotent).

    Args:
        log_file: Optional CSV log file path; only honored on first setup.

    Returns:
        Configured logger instance for the application
    """
    global _logger

    if _logger is not None:
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")

    logger = logging.getLogger(APP_LOGGER_NAME)
    logger.setLevel(logging.INFO)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)

    if log_file is not None:
        logger.addHandler(_csv_file_handler(log_file))

    # Prevent propagation to root logger to avoid duplicate output
    logger.propagate = False

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured application logger, configuring it on first use."""
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    logger = get_logger()
    logger.log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    logger = logging.getLogger(APP_LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _logger = None
