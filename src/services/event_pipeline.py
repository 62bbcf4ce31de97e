from __future__ import annotations

import logging
from datetime import datetime

import pandas as pd

from src.client.base import RemoteServiceError, record_id
from src.models.outcome import RowOutcome
from src.models.row import Row, RowContext

from .context import ImportContext
from .validation import ValidationError, missing_fields, parse_datetime

"""Event import: an event scheduled for one or more already imported groups."""

__all__ = [
    "EVENT_CATEGORY",
    "import_event",
]

logger = logging.getLogger("directory_importer.events")

EVENT_CATEGORY = "Events"
REQUIRED_FIELDS = ("title", "groups_involved", "start_date")


def _localize(start: datetime, timezone: str) -> datetime:
    stamp = pd.Timestamp(start)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize(timezone)
    return stamp.to_pydatetime()


def import_event(
    ictx: ImportContext, row: Row, rctx: RowContext, *, retry: bool = False
) -> RowOutcome:
    log_extra = rctx.log_extra

    missing = missing_fields(row, REQUIRED_FIELDS)
    if missing:
        reason = f"Missing required fields for Event: {', '.join(missing)}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    try:
        start = _localize(parse_datetime(row["start_date"]), ictx.config.timezone)
    except ValidationError as e:
        reason = f"Invalid start date for event {row['title']}: {e}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.validation_failed(reason)

    duration: int | None = None
    if row.get("duration_in_minutes"):
        try:
            duration = int(float(row["duration_in_minutes"]))
        except ValueError:
            reason = f"Invalid duration for event {row['title']}: {row['duration_in_minutes']}"
            logger.error(reason, extra=log_extra)
            return RowOutcome.validation_failed(reason)

    group_ids: list[str] = []
    try:
        for name in (n.strip() for n in row["groups_involved"].split(",")):
            if not name:
                continue
            group_id = ictx.resolver.find_group(name, rctx)
            if group_id is None:
                if retry:
                    logger.error("Couldn't find group for event: %s", name, extra=log_extra)
                    return RowOutcome.unresolved(name)
                logger.warning(
                    "Couldn't find group for event: %s, retrying after the other rows",
                    name,
                    extra=log_extra,
                )
                return RowOutcome.deferred(name)
            group_ids.append(group_id)

        extra = {k: row[k] for k in ("description", "location") if k in row}
        logger.info("Importing event: %s", row["title"], extra=log_extra)
        record = ictx.client.event_create(row["title"], group_ids, start, duration, extra)
    except RemoteServiceError as e:
        reason = f"Failed to import event {row['title']}: {e}"
        logger.error(reason, extra=log_extra)
        return RowOutcome.remote_failure(reason)

    event_id = record_id(record)
    if event_id is None:
        reason = f"Failed to import event {row['title']}: directory returned no id"
        logger.error(reason, extra=log_extra)
        return RowOutcome.remote_failure(reason)
    outcome = RowOutcome.created(event_id, EVENT_CATEGORY)
    ictx.record_outcome(outcome)
    return outcome
