"""Domain models for the directory bulk importer.

This package contains the value types shared by the reader, the row pipelines,
the scheduler and the summary output.
"""

from .config_models import ClientConfig, ImportConfig
from .error_record import ErrorRecord
from .import_job import ImportJob, RawRow, RowSource
from .outcome import OutcomeKind, RowOutcome
from .processing_result import ImportResult, SheetResult
from .row import Row, RowContext

__all__ = [
    # Configuration models
    "ClientConfig",
    "ImportConfig",
    # Processing models
    "ErrorRecord",
    "ImportJob",
    "RawRow",
    "RowSource",
    "Row",
    "RowContext",
    "OutcomeKind",
    "RowOutcome",
    # Results
    "ImportResult",
    "SheetResult",
]
